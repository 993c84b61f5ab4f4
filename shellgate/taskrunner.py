"""mise task resolution.

``mise run lint`` (or ``mise r lint``, or ``mise lint`` when ``lint`` is not
one of mise's own subcommands) is expanded to the shell commands the task
would run, dependencies first, so each can be checked like typed input.
"""

from __future__ import annotations

__all__ = [
    'MISE_SUBCOMMANDS',
    'TaskDefinition',
    'find_mise_config',
    'load_tasks',
    'parse_mise_invocation',
    'task_commands',
]

import logging
import tomllib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pydantic

from shellgate.flags import first_positional
from shellgate.models import SubCommand
from shellgate.schemas.base import LenientModel

logger = logging.getLogger(__name__)

_CONFIG_NAMES = ('.mise.toml', 'mise.toml')

# ``mise <word>`` is a task shorthand only when <word> is none of these.
MISE_SUBCOMMANDS = frozenset({
    'activate', 'alias', 'backends', 'bin-paths', 'cache', 'completion', 'config', 'current',
    'deactivate', 'direnv', 'doctor', 'en', 'env', 'exec', 'fmt', 'generate', 'global', 'hook-env',
    'hook-not-found', 'implode', 'install', 'latest', 'link', 'local', 'ls', 'ls-remote', 'outdated',
    'plugins', 'prune', 'registry', 'reshim', 'run', 'search', 'self-update', 'set', 'settings',
    'shell', 'sync', 'tasks', 'test-tool', 'tool', 'trust', 'uninstall', 'unset', 'unuse',
    'upgrade', 'use', 'version', 'watch', 'where', 'which',
    'r', 'x', 'i', 'u', 'p', 'e', 'up', 'g',
})  # fmt: skip

_RUN_VALUE_FLAGS = frozenset({'-C', '--cd', '-j', '--jobs', '-o', '--output', '-t', '--tool', '-E', '--env'})


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """One ``[tasks.<name>]`` entry."""

    name: str
    run: str | None = None
    depends: tuple[str, ...] = ()
    dir: str | None = None

    def script(self) -> str | None:
        """The task's command with any shebang line dropped, prefixed by ``cd <dir>``."""
        if self.run is None:
            return None
        script = self.run.strip()
        if script.startswith('#!'):
            script = '\n'.join(script.splitlines()[1:]).strip()
        if not script:
            return None
        if self.dir:
            return f'cd {self.dir} && {script}'
        return script


class _TaskEntry(LenientModel):
    run: str | list[str] | None = None
    depends: str | list[str] = []
    dir: str | None = None


def parse_mise_invocation(cmd: SubCommand) -> str | None:
    """Task name invoked by ``cmd``, or None if it is not a task run."""
    if cmd.base_program != 'mise' or not cmd.args:
        return None
    first = cmd.args[0]
    if first in ('run', 'r'):
        return first_positional(cmd.args[1:], _RUN_VALUE_FLAGS)
    if first.startswith('-') or first in MISE_SUBCOMMANDS:
        return None
    return first


def find_mise_config(cwd: str) -> Path | None:
    """Nearest ``.mise.toml`` or ``mise.toml`` in ``cwd`` or its parents."""
    start = Path(cwd)
    for directory in (start, *start.parents):
        for name in _CONFIG_NAMES:
            path = directory / name
            if path.is_file():
                return path
    return None


def load_tasks(path: Path) -> Mapping[str, TaskDefinition]:
    """Tasks declared in the mise config at ``path``. Unreadable files have none."""
    try:
        data = tomllib.loads(path.read_text())
    except OSError as exc:
        logger.debug('cannot read %s: %s', path, exc)
        return {}
    except tomllib.TOMLDecodeError as exc:
        logger.warning('ignoring malformed mise config %s: %s', path, exc)
        return {}

    tasks_table = data.get('tasks')
    if not isinstance(tasks_table, dict):
        return {}

    tasks: dict[str, TaskDefinition] = {}
    for name, value in tasks_table.items():
        definition = _task_definition(name, value)
        if definition is not None:
            tasks[name] = definition
    return tasks


def _task_definition(name: str, value: Any) -> TaskDefinition | None:
    # ``lint = "ruff check"`` and ``lint = ["a", "b"]`` are shorthand for ``run``
    if isinstance(value, (str, list)):
        value = {'run': value}
    try:
        entry = _TaskEntry.model_validate(value)
    except pydantic.ValidationError as exc:
        logger.debug('skipping mise task %s: %s', name, exc)
        return None

    run = ' && '.join(entry.run) if isinstance(entry.run, list) else entry.run
    depends = (entry.depends,) if isinstance(entry.depends, str) else tuple(entry.depends)
    return TaskDefinition(name=name, run=run, depends=depends, dir=entry.dir)


def task_commands(tasks: Mapping[str, TaskDefinition], name: str) -> Sequence[str]:
    """Commands ``name`` runs, each dependency's before its dependent's.

    Every task contributes at most once, so dependency cycles terminate.
    """
    commands: list[str] = []
    _collect(tasks, name, commands, visited=set())
    return commands


def _collect(tasks: Mapping[str, TaskDefinition], name: str, commands: list[str], visited: set[str]) -> None:
    if name in visited:
        return
    visited.add(name)

    task = tasks.get(name)
    if task is None:
        return
    for dependency in task.depends:
        _collect(tasks, dependency, commands, visited)
    if (script := task.script()) is not None:
        commands.append(script)
