"""package.json script resolution for npm, pnpm, yarn, and bun.

``npm run <script>`` always needs the literal ``run``. pnpm, yarn, and bun
also accept ``exec`` and the bare ``<pm> <script>`` shorthand, as long as the
script name is not one of their builtin commands.
"""

from __future__ import annotations

__all__ = [
    'ManifestScripts',
    'PACKAGE_MANAGERS',
    'ScriptInvocation',
    'find_package_json',
    'load_scripts',
    'parse_script_invocation',
]

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import pydantic

from shellgate.flags import first_positional
from shellgate.models import SubCommand
from shellgate.schemas.base import LenientModel

logger = logging.getLogger(__name__)

PACKAGE_MANAGERS = frozenset({'npm', 'pnpm', 'yarn', 'bun'})

# Words that stay with the package-manager gate instead of naming a script.
# Common script names the gate already classifies (lint, test, build...) are
# listed too, so ``pnpm lint`` is judged as the tool it is.
_BUILTIN_COMMANDS = frozenset({
    'add', 'remove', 'install', 'uninstall', 'update', 'upgrade', 'init', 'publish', 'pack',
    'link', 'unlink', 'list', 'ls', 'outdated', 'audit', 'why', 'bin', 'cache', 'config', 'exec',
    'dlx', 'create', 'store', 'rebuild', 'prune', 'dedupe', 'patch', 'licenses', 'doctor',
    'completion', 'run', 'test', 'start', 'build', 'dev',
    'lint', 'check', 'typecheck', 'format', 'tsc', 'prettier', 'eslint',
    '-v', '--version', '-h', '--help',
})  # fmt: skip


@dataclass(frozen=True, slots=True)
class ScriptInvocation:
    manager: str
    script: str

    @property
    def label(self) -> str:
        return f'{self.manager} run {self.script}'


type ManifestScripts = Mapping[str, str]


class _PackageJson(LenientModel):
    scripts: dict[str, str] = {}


def parse_script_invocation(cmd: SubCommand) -> ScriptInvocation | None:
    """The package script ``cmd`` runs, or None if it runs none."""
    manager = cmd.base_program
    if manager not in PACKAGE_MANAGERS or not cmd.args:
        return None

    first = cmd.args[0]
    if first == 'run' or (first == 'exec' and manager != 'npm'):
        script = first_positional(cmd.args[1:])
        return ScriptInvocation(manager, script) if script is not None else None
    if manager == 'npm' or first.startswith('-') or first in _BUILTIN_COMMANDS:
        return None
    return ScriptInvocation(manager, first)


def find_package_json(cwd: str) -> Path | None:
    """Nearest ``package.json`` in ``cwd`` or its parents."""
    start = Path(cwd)
    for directory in (start, *start.parents):
        path = directory / 'package.json'
        if path.is_file():
            return path
    return None


def load_scripts(path: Path) -> ManifestScripts:
    """The ``scripts`` mapping of the manifest at ``path``. Unreadable manifests have none."""
    try:
        data = json.loads(path.read_text())
    except OSError as exc:
        logger.debug('cannot read %s: %s', path, exc)
        return {}
    except json.JSONDecodeError as exc:
        logger.warning('ignoring malformed package.json %s: %s', path, exc)
        return {}

    try:
        return _PackageJson.model_validate(data).scripts
    except pydantic.ValidationError as exc:
        logger.warning('ignoring malformed package.json %s: %s', path, exc)
        return {}
