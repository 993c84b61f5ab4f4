"""Raw-text checks for dangerous shell idioms.

These run on the unparsed command string, independent of the AST, and
only ever ask for approval. Their signals join the per-command gate
verdicts in one severity pool; they do not short-circuit parsing.
"""

from __future__ import annotations

__all__ = [
    'scan',
]

import re
from collections.abc import Sequence

from shellgate.models import GateVerdict

_PIPE_TARGETS: Sequence[tuple[re.Pattern[str], str]] = [
    (re.compile(r'\|\s*(?:/usr)?(?:/bin/)?bash\b'), 'Piping to bash'),
    (re.compile(r'\|\s*(?:/usr)?(?:/bin/)?sh\b'), 'Piping to sh'),
    (re.compile(r'\|\s*(?:/usr)?(?:/bin/)?zsh\b'), 'Piping to zsh'),
    (re.compile(r'\|\s*(?:/usr/bin/)?sudo\b'), 'Piping to sudo'),
    (re.compile(r'\|\s*doas\b'), 'Piping to doas'),
    (re.compile(r'\|\s*python[0-9.]*\b'), 'Piping to python'),
    (re.compile(r'\|\s*perl\b'), 'Piping to perl'),
    (re.compile(r'\|\s*ruby\b'), 'Piping to ruby'),
    (re.compile(r'\|\s*node\b'), 'Piping to node'),
]

_EVAL_RE = re.compile(r'(?:^|[;&|(])\s*eval\s')
_SOURCE_RE = re.compile(r'(?:^|[;&|(])\s*source\s+\S')
_DOT_SOURCE_RE = re.compile(r'(?:^|[;&|(])\s*\.\s+[^.\s]')

_DESTRUCTIVE_TARGETS = ('rm', 'mv', 'cp', 'chmod', 'chown', 'dd', 'shred')
_XARGS_RE = re.compile(r'\bxargs\b(?:\s+-\S+(?:\s+(?:\d+|\{\}))?)*\s+(' + '|'.join(_DESTRUCTIVE_TARGETS) + r')\b')

_FIND_ACTIONS: Sequence[tuple[re.Pattern[str], str]] = [
    (re.compile(r'\bfind\b.*\s-delete\b'), '-delete'),
    (re.compile(r'\bfind\b.*\s-exec\s+rm\b'), '-exec rm'),
    (re.compile(r'\bfind\b.*\s-exec\s+mv\b'), '-exec mv'),
    (re.compile(r'\bfind\b.*\s-execdir\s+rm\b'), '-execdir rm'),
]
_FD_EXEC_RE = re.compile(
    r'\bfd\b.*\s(?:-x|--exec|-X|--exec-batch)\s+(rm|mv|chmod|chown|dd|shred)\b',
)

_SUBSTITUTION_RE = re.compile(r'\$\(([^)]*)\)')
_BACKTICK_RE = re.compile(r'`([^`]*)`')
_DANGEROUS_VERB_RE = re.compile(r'(?:^|[\s;&|])(?:rm|mv|chmod|chown|dd)\s')

_REDIRECT_RE = re.compile(r'(?:^|[^0-9&=/$<>])>{1,2}\|?\s*([^>&\s|;]+)')
_AMP_REDIRECT_RE = re.compile(r'&>{1,2}\s*([^\s|;&]+)')
_NULL_DEVICES = frozenset({'/dev/null', '/dev/stdout', '/dev/stderr'})


def scan(command: str) -> Sequence[GateVerdict]:
    """Return one Ask verdict per dangerous idiom found in ``command``."""
    findings: list[GateVerdict] = []
    text = _mask_quoted(command)

    for pattern, reason in _PIPE_TARGETS:
        if pattern.search(text):
            findings.append(GateVerdict.ask(reason))

    if _EVAL_RE.search(text):
        findings.append(GateVerdict.ask('eval: Arbitrary code execution'))
    if _SOURCE_RE.search(text):
        findings.append(GateVerdict.ask('source: Executes arbitrary script'))
    if _DOT_SOURCE_RE.search(text):
        findings.append(GateVerdict.ask('dot-source: Executes arbitrary script'))

    if m := _XARGS_RE.search(text):
        findings.append(GateVerdict.ask(f'xargs piping to {m.group(1)}'))

    for pattern, action in _FIND_ACTIONS:
        if pattern.search(text):
            findings.append(GateVerdict.ask(f'find with {action}'))
            break

    if m := _FD_EXEC_RE.search(text):
        findings.append(GateVerdict.ask(f'fd executing {m.group(1)}'))

    for pattern, where in ((_SUBSTITUTION_RE, 'substitution'), (_BACKTICK_RE, 'backticks')):
        for m in pattern.finditer(command):
            body = m.group(1)
            if _DANGEROUS_VERB_RE.search(body + ' '):
                findings.append(GateVerdict.ask(f'Dangerous command in {where}: {body.strip()[:30]}'))
                break

    if command.lstrip().startswith(';'):
        findings.append(GateVerdict.ask('Command starts with semicolon'))

    if _writes_to_file(text, command):
        findings.append(GateVerdict.ask('Output redirection (writes to file)'))

    return findings


def _writes_to_file(masked: str, command: str) -> bool:
    """True if any output redirection targets something other than a null device.

    Operators are located in the masked text so quoted ``>`` is ignored; the
    target is read back from the original at the same offsets.
    """
    matches = [*_REDIRECT_RE.finditer(masked), *_AMP_REDIRECT_RE.finditer(masked)]
    targets = (command[m.start(1) : m.end(1)] for m in matches)
    return any(target not in _NULL_DEVICES for target in targets)


def _mask_quoted(command: str) -> str:
    """Replace quoted text with placeholders, preserving length.

    Quoted text is data, not shell syntax: ``echo "a > b"`` does not redirect.
    """
    out: list[str] = []
    quote: str | None = None
    escaped = False
    for ch in command:
        if escaped:
            out.append('_')
            escaped = False
        elif ch == '\\' and quote != "'":
            out.append('_')
            escaped = True
        elif quote is None:
            if ch in ('"', "'"):
                quote = ch
                out.append(' ')
            else:
                out.append(ch)
        elif ch == quote:
            quote = None
            out.append(' ')
        else:
            out.append('_')
    return ''.join(out)
