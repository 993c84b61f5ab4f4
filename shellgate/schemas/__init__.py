"""Pydantic schemas for hook I/O and user-owned documents."""

from __future__ import annotations

from shellgate.schemas.base import LenientModel, StrictModel
from shellgate.schemas.hooks import (
    AddRulesSuggestion,
    BashToolInput,
    HookInput,
    PermissionRequestBehavior,
    PermissionRequestDecision,
    PermissionRequestHookOutput,
    PreToolUseDecision,
    PreToolUseHookOutput,
    SuggestionDestination,
    SuggestionRule,
)

__all__ = [
    'AddRulesSuggestion',
    'BashToolInput',
    'HookInput',
    'LenientModel',
    'PermissionRequestBehavior',
    'PermissionRequestDecision',
    'PermissionRequestHookOutput',
    'PreToolUseDecision',
    'PreToolUseHookOutput',
    'StrictModel',
    'SuggestionDestination',
    'SuggestionRule',
]
