"""File builders for settings documents and manifests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path


def write_permissions(path: Path, **permissions: Any) -> Path:
    """Write a settings file whose ``permissions`` section holds ``permissions``."""
    return write_json(path, {'permissions': permissions})


def write_text(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path
