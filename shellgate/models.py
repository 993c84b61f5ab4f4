"""Core value types: decisions, parsed sub-commands, and gate verdicts."""

from __future__ import annotations

__all__ = [
    'Decision',
    'GateVerdict',
    'PermissionDecision',
    'SubCommand',
    'combine',
]

import enum
import posixpath
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Literal

type PermissionDecision = Literal['allow', 'ask', 'deny']


class Decision(enum.IntEnum):
    """Severity-ordered outcome of a check. Higher values are stricter."""

    SKIP = 0
    ALLOW = 1
    ASK = 2
    BLOCK = 3

    @property
    def permission(self) -> PermissionDecision:
        """Wire value for the hook output. SKIP never reaches the wire as allow."""
        if self is Decision.BLOCK:
            return 'deny'
        if self is Decision.ALLOW:
            return 'allow'
        return 'ask'


@dataclass(frozen=True, slots=True)
class SubCommand:
    """A simple command extracted from a (possibly compound) shell string."""

    program: str
    args: tuple[str, ...] = ()
    raw: str = ''
    in_pipeline: bool = False
    in_substitution: bool = False
    after_separator: bool = False
    redirects: tuple[str, ...] = ()  # files written through output redirection
    parsed: bool = True  # False when bashlex rejected the text and it was split by hand

    @property
    def base_program(self) -> str:
        """Program name with any directory prefix removed (``/usr/bin/git`` -> ``git``)."""
        return posixpath.basename(self.program) or self.program

    @property
    def subcommand(self) -> str:
        """The first one or two arguments joined, used in fallback reasons."""
        return ' '.join(self.args[:2])

    def with_args(self, program: str, args: Sequence[str]) -> SubCommand:
        return replace(self, program=program.lower(), args=tuple(args))


@dataclass(frozen=True, slots=True)
class GateVerdict:
    """A decision plus the human-readable reason that produced it."""

    decision: Decision
    reason: str | None = None
    hint: str | None = None

    @classmethod
    def skip(cls) -> GateVerdict:
        return cls(Decision.SKIP)

    @classmethod
    def allow(cls, reason: str | None = None) -> GateVerdict:
        return cls(Decision.ALLOW, reason)

    @classmethod
    def ask(cls, reason: str, hint: str | None = None) -> GateVerdict:
        return cls(Decision.ASK, reason, hint)

    @classmethod
    def block(cls, reason: str, hint: str | None = None) -> GateVerdict:
        return cls(Decision.BLOCK, reason, hint)

    def prefixed(self, label: str) -> GateVerdict:
        """Return a copy whose reason is qualified by ``label`` (e.g. ``mise lint``)."""
        if self.reason is None:
            return self
        return replace(self, reason=f'{label}: {self.reason}')


_COMBINED_HEADINGS = {
    Decision.BLOCK: 'Multiple checks blocked:',
    Decision.ASK: 'Approval needed:',
}


def combine(verdicts: Iterable[GateVerdict]) -> GateVerdict:
    """Strictest-wins combination.

    The result carries the maximum decision. Its reason comes from the
    verdicts at that severity, in evaluation order: a single reason is used
    as is, several are listed under a heading with the governing one first.
    SKIP inputs must already have been resolved by the caller.
    """
    pool = list(verdicts)
    if not pool:
        return GateVerdict.allow()

    top = max(v.decision for v in pool)
    governing = [v for v in pool if v.decision == top]
    reasons = list(dict.fromkeys(v.reason for v in governing if v.reason))
    hint = next((v.hint for v in governing if v.hint), None)

    if top is Decision.ALLOW:
        reason = reasons[0] if len(reasons) == 1 else 'Read-only operation'
        return GateVerdict(Decision.ALLOW, reason, hint)

    if len(reasons) <= 1:
        return GateVerdict(top, reasons[0] if reasons else None, hint)

    heading = _COMBINED_HEADINGS.get(top, 'Checks:')
    listing = '\n'.join(f'• {reason}' for reason in reasons)
    return GateVerdict(top, f'{heading}\n{listing}', hint)
