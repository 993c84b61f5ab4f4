"""Shared pydantic base models."""

from __future__ import annotations

__all__ = [
    'LenientModel',
    'StrictModel',
]

import pydantic


class StrictModel(pydantic.BaseModel):
    """Base model with strict validation."""

    model_config = pydantic.ConfigDict(
        extra='forbid',  # Reject unknown fields (fail-fast)
        strict=True,  # Strict type coercion
        frozen=True,  # Immutable after creation
    )


class LenientModel(pydantic.BaseModel):
    """Base model for documents owned by other programs.

    Unknown fields are ignored because the producer adds fields over time.
    """

    model_config = pydantic.ConfigDict(
        extra='ignore',
        frozen=True,
    )
