"""Evaluate one parsed command against the rule tables."""

from __future__ import annotations

__all__ = [
    'RULES',
    'evaluate_subcommand',
    'lookup',
]

import logging
import re

from shellgate.gates.registry import HANDLERS
from shellgate.gates.tables import Gate, Program, load_rule_table
from shellgate.models import Decision, GateVerdict, SubCommand

logger = logging.getLogger(__name__)

RULES = load_rule_table()

_HIDDEN_COMMAND = re.compile(r'[`(]')


def lookup(program: str) -> tuple[Gate, Program] | None:
    """Find the first gate defining ``program`` (by name or alias, any case, any path)."""
    return RULES.lookup(program.rsplit('/', 1)[-1])


def evaluate_subcommand(cmd: SubCommand) -> GateVerdict:
    """Gate verdict for a single command. Never returns SKIP.

    A custom handler, when the program has one, decides verbatim. Otherwise
    the program's block, ask and allow rules are checked in that order. A
    program that no gate knows, or whose table defers, asks. Unparsed text
    that may hide a substitution or subshell is never allowed.
    """
    found = lookup(cmd.program)
    if found is None:
        return _unknown(cmd)

    gate, program = found
    if program.handler is not None:
        verdict = HANDLERS[program.handler](cmd, program)
    else:
        verdict = program.evaluate(cmd)

    logger.debug('%s gate: %r -> %s', gate.name, cmd.raw or cmd.program, verdict.decision.name)
    if verdict.decision is Decision.SKIP:
        return _unknown(cmd)
    if verdict.decision is Decision.ALLOW and not cmd.parsed and _HIDDEN_COMMAND.search(cmd.raw):
        # substitutions and subshells bashlex could not see into
        return GateVerdict.ask(f'Unparseable command: {cmd.raw}')
    return verdict


def _unknown(cmd: SubCommand) -> GateVerdict:
    if cmd.program.startswith(('$(', '`')):
        return GateVerdict.ask('Runs the output of a command substitution')
    return GateVerdict.ask(f'Unknown command: {cmd.program}')
