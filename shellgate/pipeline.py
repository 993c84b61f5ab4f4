"""The decision pipeline: gates, then settings, then accept-edits.

Precedence, first match wins:

  1. a gate blocks
  2. a settings deny rule matches
  3. acceptEdits mode and every command is a path-safe file edit
  4. a settings ask rule, then a settings allow rule, matches
  5. the gate decision

mise tasks and package scripts are expanded before the gates run. Each
command they expand to is checked exactly as if it had been typed, with its
reasons prefixed by the invocation (``mise lint: ...``).
"""

from __future__ import annotations

__all__ = [
    'Evaluation',
    'GateCheck',
    'GateContext',
    'check_command',
    'evaluate',
    'evaluate_with_suggestions',
]

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

from shellgate import scanner, scripts, suggestions, taskrunner
from shellgate.flags import first_positional
from shellgate.gates import evaluate_subcommand
from shellgate.models import Decision, GateVerdict, SubCommand, combine
from shellgate.parser import parse_commands
from shellgate.paths import AllowedRootSet, expand_home, normalize_path, paths_acceptable
from shellgate.schemas.hooks import AddRulesSuggestion
from shellgate.settings import Settings, load_settings

logger = logging.getLogger(__name__)

ACCEPT_EDITS = 'acceptEdits'


@dataclass(frozen=True, slots=True)
class GateContext:
    """Everything a decision depends on besides the command itself."""

    cwd: str
    permission_mode: str = 'default'
    settings: Settings = field(default_factory=Settings)
    allowed_roots: AllowedRootSet | None = None

    @classmethod
    def load(cls, cwd: str | None = None, permission_mode: str | None = None) -> GateContext:
        """Context for ``cwd`` with the settings documents read from disk."""
        cwd = cwd or os.getcwd()
        settings = load_settings(cwd)
        mode = permission_mode or settings.default_mode or 'default'
        return cls(cwd=cwd, permission_mode=mode, settings=settings)

    @property
    def accept_edits(self) -> bool:
        return self.permission_mode == ACCEPT_EDITS

    @property
    def roots(self) -> AllowedRootSet:
        return self.allowed_roots or self.settings.allowed_directories(self.cwd)

    def at(self, cwd: str) -> GateContext:
        """The same session, running from ``cwd``. Allowed roots stay the session's."""
        if cwd == self.cwd:
            return self
        return replace(self, cwd=cwd, allowed_roots=self.roots)


@dataclass(frozen=True, slots=True)
class GateCheck:
    """Stage-one result: the combined gate verdict and what produced it."""

    verdict: GateVerdict
    commands: tuple[tuple[SubCommand, GateVerdict], ...] = ()
    candidates: tuple[suggestions.RuleCandidate, ...] = ()


@dataclass(frozen=True, slots=True)
class Evaluation:
    verdict: GateVerdict
    suggestions: Sequence[AddRulesSuggestion] = ()


# --- Stage one: gates ---


def check_command(
    command: str,
    context: GateContext,
    visited: frozenset[str] = frozenset(),
    *,
    expanded: bool = False,
) -> GateCheck:
    """Scan, parse, and gate every command in ``command``; combine strictest-wins.

    ``visited`` holds the tasks and scripts already being expanded further up,
    so self-referencing manifests terminate. Inside an expansion
    (``expanded``), accept-edits mode approves path-safe file edits one
    command at a time.
    """
    if not command.strip():
        return GateCheck(GateVerdict.allow())

    verdicts = list(scanner.scan(command))
    pairs: list[tuple[SubCommand, GateVerdict]] = []
    candidates: list[suggestions.RuleCandidate] = []
    cwd = context.cwd

    for cmd in parse_commands(command):
        local = context.at(cwd)
        if (task := taskrunner.parse_mise_invocation(cmd)) is not None:
            verdict = _check_task(task, local, visited)
            if verdict.decision is Decision.ASK:
                candidates += suggestions.wrapper_candidates(cmd, f'mise run {task}')
        elif (invocation := scripts.parse_script_invocation(cmd)) is not None:
            verdict = _check_script(invocation, local, visited)
            if verdict.decision is Decision.ASK:
                candidates += suggestions.wrapper_candidates(cmd, invocation.label)
        else:
            verdict = evaluate_subcommand(cmd)
            if (
                expanded
                and verdict.decision is Decision.ASK
                and local.accept_edits
                and paths_acceptable([cmd], local.cwd, local.roots)
            ):
                verdict = GateVerdict.allow()
            candidates += suggestions.rule_candidates(cmd, verdict)

        if cmd.base_program == 'cd' and not cmd.in_substitution:
            cwd = _change_directory(cwd, cmd.args)
        pairs.append((cmd, verdict))
        verdicts.append(verdict)

    if not pairs and not verdicts:
        return GateCheck(GateVerdict.ask(f'Unknown command: {command.strip()}'))
    return GateCheck(combine(verdicts), tuple(pairs), tuple(candidates))


def _change_directory(cwd: str, args: Sequence[str]) -> str:
    target = first_positional(args)
    if target is None or target == '~':
        return str(Path.home())
    if target == '-':
        return cwd
    return normalize_path(os.path.join(cwd, expand_home(target)))


def _check_task(task: str, context: GateContext, visited: frozenset[str]) -> GateVerdict:
    label = f'mise {task}'
    config = taskrunner.find_mise_config(context.cwd)
    if config is None:
        return GateVerdict.ask(f'{label}: No mise.toml found')

    key = f'mise:{config}:{task}'
    if key in visited:
        return GateVerdict.allow()

    commands = taskrunner.task_commands(taskrunner.load_tasks(config), task)
    if not commands:
        return GateVerdict.ask(f'{label}: Task not found or has no commands')
    logger.debug('%s expands to %r', label, commands)
    # mise runs tasks from the directory of the config that defines them
    return _check_expansion(label, commands, context.at(str(config.parent)), visited | {key})


def _check_script(invocation: scripts.ScriptInvocation, context: GateContext, visited: frozenset[str]) -> GateVerdict:
    label = invocation.label
    manifest = scripts.find_package_json(context.cwd)
    if manifest is None:
        return GateVerdict.ask(f'{label}: No package.json found')

    key = f'script:{manifest}:{invocation.script}'
    if key in visited:
        return GateVerdict.allow()

    script = scripts.load_scripts(manifest).get(invocation.script)
    if script is None:
        return GateVerdict.ask(f'{label}: Script not found')
    logger.debug('%s expands to %r', label, script)
    return _check_expansion(label, [script], context.at(str(manifest.parent)), visited | {key})


def _check_expansion(
    label: str, commands: Sequence[str], context: GateContext, visited: frozenset[str]
) -> GateVerdict:
    verdicts = [check_command(command, context, visited, expanded=True).verdict.prefixed(label) for command in commands]
    combined = combine(verdicts)
    if combined.decision is Decision.ALLOW:
        return GateVerdict.allow(f'{label}: All commands safe')
    return combined


# --- Stages two to five ---


def evaluate(command: str, context: GateContext) -> GateVerdict:
    """Final decision for ``command``. Never SKIP."""
    return evaluate_with_suggestions(command, context).verdict


def evaluate_with_suggestions(command: str, context: GateContext) -> Evaluation:
    """Final decision plus the ``addRules`` suggestions to offer with an ask."""
    if not command.strip():
        return Evaluation(GateVerdict.allow(''))

    check = check_command(command, context)
    gate = check.verdict
    if gate.decision is Decision.BLOCK:
        return Evaluation(gate)

    settings = context.settings
    texts = [command, *(cmd.raw for cmd, _ in check.commands if cmd.raw)]
    if any(settings.deny_matches(text) for text in texts):
        return Evaluation(GateVerdict.block('Matched settings.json deny rule'))

    if context.accept_edits and paths_acceptable([cmd for cmd, _ in check.commands], context.cwd, context.roots):
        return Evaluation(GateVerdict.allow('Auto-allowed in acceptEdits mode'))

    if any(settings.ask_matches(text) for text in texts):
        return Evaluation(GateVerdict.ask('Matched settings.json ask rule'))
    if _allowed_by_settings(command, check, settings):
        return Evaluation(GateVerdict.allow('Matched settings.json allow rule'))

    if gate.decision is Decision.ASK:
        return Evaluation(gate, suggestions.build_suggestions(check.candidates))
    return Evaluation(gate)


def _allowed_by_settings(command: str, check: GateCheck, settings: Settings) -> bool:
    """True if allow rules cover the command.

    A compound command is covered only when every part either matches an
    allow rule or is allowed by its gate, and at least one part matched.
    ``git:*`` thus approves ``git status && echo ok`` but not
    ``git status && rm -rf build``.
    """
    if len(check.commands) <= 1:
        return settings.allow_matches(command)

    matched = False
    for cmd, verdict in check.commands:
        if settings.allow_matches(cmd.raw):
            matched = True
        elif verdict.decision is not Decision.ALLOW:
            return False
    return matched
