"""Declarative rule tables.

Each gate is a TOML file under ``rules/`` shipped with the package. The
files are validated into frozen pydantic models once, at import, and
indexed by program name and alias. Unknown keys are rejected so a typo in a
table fails loudly instead of silently weakening a rule.

Table layout::

    name = "git"
    priority = 40
    safe_commands = ["tig"]          # shorthand for always-allowed programs

    [[programs]]
    name = "npm"
    aliases = ["npx"]
    handler = "..."                   # optional custom handler, preempts rules
    unknown_action = "ask"            # ask | allow | block | skip

    [[programs.block]]
    subcommand = "cache clean"
    reason = "..."

    [[programs.ask]]
    subcommand_prefix = "publish"
    reason = "..."

    [[programs.allow]]
    subcommands = ["ls", "list"]
    unless_flags = ["--fix"]
"""

from __future__ import annotations

__all__ = [
    'Gate',
    'Program',
    'Rule',
    'RuleAction',
    'RuleTable',
    'load_rule_table',
]

import logging
import tomllib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from importlib import resources
from typing import Literal

import pydantic

from shellgate.flags import has_any_flag
from shellgate.models import GateVerdict, SubCommand
from shellgate.schemas.base import StrictModel

logger = logging.getLogger(__name__)

type RuleAction = Literal['allow', 'ask', 'block', 'skip']


class TableModel(StrictModel):
    """Unknown keys still fail; TOML already yields native types."""

    model_config = pydantic.ConfigDict(strict=False)


class Rule(TableModel):
    """A condition bound to the decision of the list it sits in.

    All present conditions must hold. A rule with no conditions matches
    every invocation of its program.
    """

    subcommand: str | None = None
    subcommands: list[str] = []
    subcommand_prefix: str | None = None
    action_prefix: str | None = None
    if_flags_any: list[str] = []
    unless_flags: list[str] = []
    if_args_contain: list[str] = []
    reason: str | None = None

    def matches(self, args: Sequence[str]) -> bool:
        offset = 0
        alternatives = [self.subcommand] if self.subcommand else []
        alternatives += self.subcommands
        if alternatives:
            for phrase in alternatives:
                tokens = phrase.split()
                if list(args[: len(tokens)]) == tokens:
                    offset = len(tokens)
                    break
            else:
                return False

        if self.subcommand_prefix is not None:
            if len(args) <= offset or not args[offset].startswith(self.subcommand_prefix):
                return False
        if self.action_prefix is not None:
            if len(args) < 2 or not args[1].startswith(self.action_prefix):
                return False
        if self.if_flags_any and not has_any_flag(args, self.if_flags_any):
            return False
        if self.if_args_contain and not any(value in args for value in self.if_args_contain):
            return False
        if self.unless_flags and has_any_flag(args, self.unless_flags):
            return False
        return True


class Program(TableModel):
    """Rules for one program, checked block, then ask, then allow."""

    name: str
    aliases: list[str] = []
    handler: str | None = None
    unknown_action: RuleAction = 'ask'
    unknown_reason: str | None = None
    block: list[Rule] = []
    ask: list[Rule] = []
    allow: list[Rule] = []

    def evaluate(self, cmd: SubCommand) -> GateVerdict:
        """Declarative evaluation, ignoring any custom handler."""
        label = cmd.base_program
        for rule in self.block:
            if rule.matches(cmd.args):
                return GateVerdict.block(f'{label}: {rule.reason or "Blocked"}')
        for rule in self.ask:
            if rule.matches(cmd.args):
                return GateVerdict.ask(f'{label}: {rule.reason or cmd.subcommand or "Requires approval"}')
        for rule in self.allow:
            if rule.matches(cmd.args):
                return GateVerdict.allow(rule.reason)
        return self.fallback(cmd)

    def fallback(self, cmd: SubCommand) -> GateVerdict:
        """Verdict when no rule matches."""
        label = cmd.base_program
        match self.unknown_action:
            case 'allow':
                return GateVerdict.allow(self.unknown_reason)
            case 'skip':
                return GateVerdict.skip()
            case 'block':
                return GateVerdict.block(f'{label}: {self.unknown_reason or "Blocked"}')
            case _:
                detail = self.unknown_reason or cmd.subcommand
                return GateVerdict.ask(f'{label}: {detail}' if detail else label)


class Gate(TableModel):
    """A named, prioritized table of programs."""

    name: str
    priority: int
    description: str | None = None
    safe_commands: list[str] = []
    programs: list[Program] = []

    def all_programs(self) -> Sequence[Program]:
        safe = [Program(name=name, unknown_action='allow') for name in self.safe_commands]
        return [*self.programs, *safe]


@dataclass(frozen=True, slots=True)
class RuleTable:
    """All gates in priority order, indexed by lowercase program name and alias."""

    gates: Sequence[Gate]
    index: Mapping[str, tuple[Gate, Program]]

    def lookup(self, program: str) -> tuple[Gate, Program] | None:
        return self.index.get(program.lower())

    def handler_names(self) -> set[str]:
        return {program.handler for _, program in self.index.values() if program.handler}


def load_rule_table(package: str = 'shellgate.gates', directory: str = 'rules') -> RuleTable:
    """Load and index every ``*.toml`` gate shipped in ``package/directory``.

    The first gate (by priority) defining a name owns it.
    """
    root = resources.files(package).joinpath(directory)
    gates: list[Gate] = []
    for entry in root.iterdir():
        if not entry.name.endswith('.toml'):
            continue
        data = tomllib.loads(entry.read_text(encoding='utf-8'))
        gates.append(Gate.model_validate(data))
    gates.sort(key=lambda gate: (gate.priority, gate.name))

    index: dict[str, tuple[Gate, Program]] = {}
    for gate in gates:
        for program in gate.all_programs():
            for name in (program.name, *program.aliases):
                key = name.lower()
                if key in index:
                    logger.debug('%s: %s already defined by gate %s', gate.name, key, index[key][0].name)
                    continue
                index[key] = (gate, program)

    return RuleTable(gates=tuple(gates), index=index)
