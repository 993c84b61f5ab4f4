"""Ranked permission settings and ``Bash(...)`` pattern matching.

Settings documents are read from four fixed locations, highest rank first:

  1. managed (machine-wide) settings
  2. ``<cwd>/.claude/settings.local.json`` (project local)
  3. ``<cwd>/.claude/settings.json`` (project shared)
  4. ``~/.claude/settings.json`` (user)

When the same pattern string is listed under different categories in
different documents, the highest-ranked document decides its category.
Within one document, deny beats ask beats allow.
"""

from __future__ import annotations

__all__ = [
    'CommandPattern',
    'MANAGED_SETTINGS_ENV',
    'Settings',
    'SettingsDocument',
    'load_settings',
    'read_settings_document',
    'settings_locations',
]

import json
import logging
import os
import re
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import pydantic

from shellgate.paths import AllowedRootSet
from shellgate.schemas.base import LenientModel

logger = logging.getLogger(__name__)

MANAGED_SETTINGS_ENV = 'SHELLGATE_MANAGED_SETTINGS'

_LINUX_MANAGED = Path('/etc/claude-code/managed-settings.json')
_MACOS_MANAGED = Path('/Library/Application Support/ClaudeCode/managed-settings.json')

type Category = Literal['deny', 'ask', 'allow']

_CATEGORIES: Sequence[Category] = ('deny', 'ask', 'allow')

_BASH_PATTERN_RE = re.compile(r'^Bash\((.*)\)$', re.DOTALL)


# --- File schema ---


class _Permissions(LenientModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)

    allow: Sequence[str] = ()
    ask: Sequence[str] = ()
    deny: Sequence[str] = ()
    additional_directories: Sequence[str] = pydantic.Field(default=(), alias='additionalDirectories')
    default_mode: str | None = pydantic.Field(default=None, alias='defaultMode')

    @pydantic.field_validator('allow', 'ask', 'deny', 'additional_directories', mode='before')
    @classmethod
    def _strings_only(cls, value: Any) -> Any:
        # One stray non-string entry should not discard the whole document.
        if isinstance(value, list):
            return [entry for entry in value if isinstance(entry, str)]
        return value


class _SettingsFile(LenientModel):
    permissions: _Permissions = _Permissions()


# --- Documents ---


@dataclass(frozen=True, slots=True)
class SettingsDocument:
    """The permission lists of one settings file."""

    source: str
    rank: int
    allow: tuple[str, ...] = ()
    ask: tuple[str, ...] = ()
    deny: tuple[str, ...] = ()
    additional_directories: tuple[str, ...] = ()
    default_mode: str | None = None

    def entries(self, category: Category) -> tuple[str, ...]:
        return getattr(self, category)


def settings_locations(cwd: str) -> Sequence[tuple[int, Path]]:
    """The ranked settings paths for ``cwd``, highest rank first."""
    managed = os.environ.get(MANAGED_SETTINGS_ENV)
    if managed:
        managed_path = Path(managed)
    elif sys.platform == 'darwin':
        managed_path = _MACOS_MANAGED
    else:
        managed_path = _LINUX_MANAGED

    return [
        (1, managed_path),
        (2, Path(cwd) / '.claude' / 'settings.local.json'),
        (3, Path(cwd) / '.claude' / 'settings.json'),
        (4, Path.home() / '.claude' / 'settings.json'),
    ]


def read_settings_document(path: Path, rank: int) -> SettingsDocument:
    """Read one settings file. Missing, unreadable, or malformed files are empty."""
    empty = SettingsDocument(source=str(path), rank=rank)
    if not path.is_file():
        logger.debug('no settings at %s', path)
        return empty

    try:
        data = json.loads(path.read_text())
    except OSError as exc:
        logger.debug('cannot read settings %s: %s', path, exc)
        return empty
    except json.JSONDecodeError as exc:
        logger.warning('ignoring malformed settings file %s: %s', path, exc)
        return empty

    try:
        parsed = _SettingsFile.model_validate(data)
    except pydantic.ValidationError as exc:
        logger.warning('ignoring malformed settings file %s: %s', path, exc)
        return empty

    permissions = parsed.permissions
    return SettingsDocument(
        source=str(path),
        rank=rank,
        allow=tuple(permissions.allow),
        ask=tuple(permissions.ask),
        deny=tuple(permissions.deny),
        additional_directories=tuple(permissions.additional_directories),
        default_mode=permissions.default_mode,
    )


# --- Patterns ---


@dataclass(frozen=True, slots=True)
class CommandPattern:
    """A compiled ``Bash(...)`` permission entry.

    ``Bash(git:*)`` matches ``git`` and ``git <anything>`` but not ``github``.
    ``Bash(git*)`` matches any command text starting with ``git``.
    ``Bash(git status)`` matches that exact command only.
    A bare ``Bash`` matches every command.
    """

    entry: str
    kind: Literal['any', 'word_prefix', 'prefix', 'exact']
    text: str = ''

    @classmethod
    def parse(cls, entry: str) -> CommandPattern | None:
        """Compile ``entry``; entries for other tools return None."""
        entry = entry.strip()
        if entry == 'Bash':
            return cls(entry, 'any')
        m = _BASH_PATTERN_RE.match(entry)
        if m is None:
            return None
        inner = m.group(1).strip()
        if inner.endswith(':*'):
            return cls(entry, 'word_prefix', inner[:-2])
        if inner.endswith('*'):
            return cls(entry, 'prefix', inner[:-1])
        return cls(entry, 'exact', inner)

    def matches(self, command: str) -> bool:
        command = command.strip()
        match self.kind:
            case 'any':
                return True
            case 'word_prefix':
                if not command.startswith(self.text):
                    return False
                rest = command[len(self.text) :]
                return not rest or rest[0].isspace()
            case 'prefix':
                return command.startswith(self.text)
            case 'exact':
                return command == self.text


# --- Merged view ---


@dataclass(frozen=True, slots=True)
class Settings:
    """The merged permission policy of every settings document."""

    documents: tuple[SettingsDocument, ...] = ()
    patterns: dict[Category, tuple[CommandPattern, ...]] = field(default_factory=dict)

    @classmethod
    def from_documents(cls, documents: Iterable[SettingsDocument]) -> Settings:
        ranked = tuple(sorted(documents, key=lambda doc: doc.rank))
        owner: dict[str, Category] = {}
        for doc in ranked:
            for category in _CATEGORIES:
                for entry in doc.entries(category):
                    owner.setdefault(entry.strip(), category)

        patterns: dict[Category, list[CommandPattern]] = {category: [] for category in _CATEGORIES}
        for entry, category in owner.items():
            pattern = CommandPattern.parse(entry)
            if pattern is not None:
                patterns[category].append(pattern)
        return cls(ranked, {category: tuple(found) for category, found in patterns.items()})

    def matching(self, category: Category, command: str) -> CommandPattern | None:
        """The first ``category`` pattern that matches ``command``, if any."""
        return next((p for p in self.patterns.get(category, ()) if p.matches(command)), None)

    def deny_matches(self, command: str) -> bool:
        return self.matching('deny', command) is not None

    def ask_matches(self, command: str) -> bool:
        return self.matching('ask', command) is not None

    def allow_matches(self, command: str) -> bool:
        return self.matching('allow', command) is not None

    @property
    def additional_directories(self) -> Sequence[str]:
        merged = (directory for doc in self.documents for directory in doc.additional_directories)
        return list(dict.fromkeys(merged))

    @property
    def default_mode(self) -> str | None:
        return next((doc.default_mode for doc in self.documents if doc.default_mode), None)

    def allowed_directories(self, cwd: str) -> AllowedRootSet:
        return AllowedRootSet.build(cwd, self.additional_directories)


def load_settings(cwd: str) -> Settings:
    """Load and merge every ranked settings document for ``cwd``."""
    return Settings.from_documents(read_settings_document(path, rank) for rank, path in settings_locations(cwd))
