"""Name-keyed registry of custom command handlers.

A program entry in a rule table opts in with ``handler = "<name>"``. The
handler receives the parsed command and its table entry, so it can fall
back to the entry's declarative rules for cases it does not special-case.
"""

from __future__ import annotations

__all__ = [
    'HANDLERS',
    'Handler',
    'handler',
]

from collections.abc import Callable

from shellgate.gates.tables import Program
from shellgate.models import GateVerdict, SubCommand

type Handler = Callable[[SubCommand, Program], GateVerdict]

HANDLERS: dict[str, Handler] = {}


def handler(name: str) -> Callable[[Handler], Handler]:
    """Register a function as the custom handler called ``name``."""

    def register(func: Handler) -> Handler:
        if name in HANDLERS:
            raise ValueError(f'duplicate command handler: {name}')
        HANDLERS[name] = func
        return func

    return register
