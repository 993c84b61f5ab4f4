"""Per-command permission gates: TOML rule tables plus custom handlers."""

from __future__ import annotations

from shellgate.gates import engine
from shellgate.gates import handlers as handlers
from shellgate.gates.engine import RULES, evaluate_subcommand, lookup
from shellgate.gates.registry import HANDLERS

__all__ = [
    'RULES',
    'engine',
    'evaluate_subcommand',
    'lookup',
]

_missing = RULES.handler_names() - HANDLERS.keys()
if _missing:
    raise RuntimeError(f'rule tables reference unregistered handlers: {", ".join(sorted(_missing))}')
