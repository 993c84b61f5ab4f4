"""Split a shell command string into the simple commands it would run.

Uses bashlex (a port of bash's own parser) for the AST. Every simple command
reachable through pipelines, ``&&``/``||``/``;``/newline lists, subshells,
brace groups, loop and conditional bodies, function bodies, and command or
process substitutions becomes one :class:`SubCommand`, in source order.

Quoted text stays a single argument. ``$(...)`` and backticks are parsed
structurally, so ``echo "gh pr create"`` yields only ``echo`` while
``echo $(gh pr create)`` also yields ``gh``.

bashlex rejects a fair amount of everyday bash (``[[ ]]``, arithmetic,
``case``). Such input is split by hand on unquoted list and pipe operators
and each piece is parsed again; a piece bashlex still rejects becomes one
opaque SubCommand (``parsed=False``) whose program is its first word.
"""

from __future__ import annotations

__all__ = [
    'SHELL_PROGRAMS',
    'parse_commands',
    'shell_script_argument',
    'split_operators',
    'tokenize',
]

import logging
import posixpath
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace

import bashlex
import bashlex.ast
import bashlex.errors

from shellgate.models import SubCommand

logger = logging.getLogger(__name__)

SHELL_PROGRAMS = frozenset({'bash', 'sh', 'zsh', 'dash', 'ksh'})

# Wrappers that run their trailing arguments as a command.
_WRAPPERS = frozenset({'env', 'time', 'nice', 'nohup', 'timeout', 'command', 'builtin', 'exec', 'stdbuf'})

# Flags that consume the following argument, per wrapper.
_WRAPPER_VALUE_FLAGS: dict[str, frozenset[str]] = {
    'env': frozenset({'-u', '--unset', '-C', '--chdir', '-S', '--split-string'}),
    'nice': frozenset({'-n', '--adjustment'}),
    'timeout': frozenset({'-s', '--signal', '-k', '--kill-after'}),
    'exec': frozenset({'-a'}),
    'stdbuf': frozenset({'-i', '-o', '-e'}),
}

# Nesting depth for ``bash -c`` scripts; deeper nesting stays opaque.
_MAX_SHELL_NESTING = 8

# bashlex does not implement the ``time`` keyword.
_TIME_KEYWORD = re.compile(r'^\s*time(?:\s+-p)?(?:\s+--)?\s+(?=\S)')

_OUTPUT_REDIRECTS = frozenset({'>', '>>', '>|', '&>', '&>>', '>&', '<>'})
_LIST_OPERATORS = ('&&', '||', ';;', '|&')
_PIPES = ('|', '|&')


@dataclass(frozen=True, slots=True)
class _Position:
    """Structural context of the node being visited."""

    in_pipeline: bool = False
    in_substitution: bool = False
    after_separator: bool = False


def parse_commands(command: str) -> Sequence[SubCommand]:
    """Parse ``command`` into its simple commands, in source order.

    Empty or whitespace-only input yields an empty sequence. Input bashlex
    rejects is split on its operators; what cannot be parsed even then
    comes back as opaque SubCommands rather than raising.
    """
    return _parse(command, _Position(), depth=0)


def _parse(command: str, position: _Position, depth: int) -> list[SubCommand]:
    if not command.strip():
        return []

    source = _TIME_KEYWORD.sub('', command, count=1)
    try:
        trees = bashlex.parse(source)
    except (bashlex.errors.ParsingError, NotImplementedError, AssertionError) as exc:
        logger.debug('bashlex could not parse %r: %s', command, exc)
        return _fallback(command, position, depth)

    collector = _Collector(source, depth)
    for index, tree in enumerate(trees):
        collector.visit(tree, replace(position, after_separator=position.after_separator or index > 0))

    if not collector.results:
        return _fallback(command, position, depth)
    return collector.results


def _fallback(command: str, position: _Position, depth: int) -> list[SubCommand]:
    pieces = split_operators(command)
    if len(pieces) <= 1:
        return _opaque(command, position, depth)

    results: list[SubCommand] = []
    previous = ''
    for index, (piece, operator) in enumerate(pieces):
        piece_position = replace(
            position,
            in_pipeline=position.in_pipeline or operator in _PIPES or previous in _PIPES,
            after_separator=position.after_separator or (index > 0 and previous not in _PIPES),
        )
        results.extend(_parse(piece, piece_position, depth))
        previous = operator
    return results


def _opaque(command: str, position: _Position, depth: int) -> list[SubCommand]:
    tokens = tokenize(command)
    if not tokens:
        return []
    program, args = _unwrap(tokens[0], tokens[1:])
    sub = SubCommand(
        program=program.lower(),
        args=tuple(args),
        raw=command.strip(),
        in_pipeline=position.in_pipeline,
        in_substitution=position.in_substitution,
        after_separator=position.after_separator,
        parsed=False,
    )
    return [sub, *_shell_script_commands(sub, position, depth)]


def _shell_script_commands(sub: SubCommand, position: _Position, depth: int) -> list[SubCommand]:
    """The commands of the ``-c`` script ``sub`` hands to a shell, if any."""
    if sub.base_program not in SHELL_PROGRAMS or depth >= _MAX_SHELL_NESTING:
        return []
    script = shell_script_argument(sub.args)
    if script is None:
        return []
    return _parse(script, position, depth + 1)


def split_operators(command: str) -> list[tuple[str, str]]:
    """Split ``command`` on unquoted ``&&``, ``||``, ``;``, ``|``, ``&`` and newlines.

    Quoted text, backticks and anything inside parentheses (``$(...)``,
    ``$((...))``, subshells) stay whole, as do redirections such as ``2>&1``
    and ``&>``. Returns ``(piece, following_operator)`` pairs with empty
    pieces dropped; the last operator is ``''``.
    """
    pieces: list[tuple[str, str]] = []
    current: list[str] = []
    quote: str | None = None
    nesting = 0
    index = 0

    while index < len(command):
        ch = command[index]
        if quote is not None:
            current.append(ch)
            if ch == '\\' and quote != "'" and index + 1 < len(command):
                current.append(command[index + 1])
                index += 1
            elif ch == quote:
                quote = None
        elif ch == '\\':
            current.append(command[index : index + 2])
            index += 1
        elif ch in ('"', "'", '`'):
            quote = ch
            current.append(ch)
        elif ch == '(':
            nesting += 1
            current.append(ch)
        elif ch == ')':
            nesting = max(nesting - 1, 0)
            current.append(ch)
        elif nesting == 0 and ch in ';&|\n' and not _is_redirection(command, index):
            pair = command[index : index + 2]
            operator = pair if pair in _LIST_OPERATORS else ch
            pieces.append((''.join(current), operator))
            current = []
            index += len(operator) - 1
        else:
            current.append(ch)
        index += 1

    pieces.append((''.join(current), ''))
    return [(text.strip(), operator) for text, operator in pieces if text.strip()]


def _is_redirection(command: str, index: int) -> bool:
    """True if the ``&`` or ``|`` at ``index`` belongs to a redirection (``2>&1``, ``&>``, ``>|``)."""
    before = command[index - 1] if index else ''
    after = command[index + 1 : index + 2]
    if command[index] == '&':
        return before in ('<', '>') or (after == '>' and before != '&')
    if command[index] == '|':
        return before == '>'
    return False


def tokenize(command: str) -> list[str]:
    """Whitespace-split ``command``, honoring quotes and backslash escapes.

    Lenient by design of its callers: an unterminated quote runs to the end
    of the input instead of raising.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_token = False
    quote: str | None = None
    chars = iter(command)

    for ch in chars:
        if quote is not None:
            if ch == quote:
                quote = None
            elif ch == '\\' and quote == '"':
                nxt = next(chars, '')
                current.append(nxt if nxt in '"\\$`' else ch + nxt)
            else:
                current.append(ch)
        elif ch in ('"', "'"):
            quote = ch
            in_token = True
        elif ch == '\\':
            current.append(next(chars, ''))
            in_token = True
        elif ch.isspace():
            if in_token:
                tokens.append(''.join(current))
                current = []
                in_token = False
        else:
            current.append(ch)
            in_token = True

    if in_token:
        tokens.append(''.join(current))
    return tokens


class _Collector:
    """Walks bashlex trees and accumulates SubCommands."""

    def __init__(self, source: str, depth: int) -> None:
        self.source = source
        self.depth = depth
        self.results: list[SubCommand] = []

    def visit(self, node: bashlex.ast.node, position: _Position) -> None:
        kind = node.kind

        if kind == 'command':
            self._visit_command(node, position)
        elif kind == 'list':
            after = position.after_separator
            for child in node.parts:
                if child.kind == 'operator':
                    after = True
                    continue
                self.visit(child, replace(position, after_separator=after))
        elif kind == 'pipeline':
            for child in node.parts:
                if child.kind != 'pipe':
                    self.visit(child, replace(position, in_pipeline=True))
        elif kind == 'compound':
            inner = position
            if node.list and node.list[0].kind == 'reservedword' and node.list[0].word == '(':
                inner = replace(position, in_substitution=True)
            first = len(self.results)
            for child in node.list:
                self.visit(child, inner)
            redirects = getattr(node, 'redirects', None) or ()
            # ``{ ...; } > file``: every command inside writes the target
            targets = tuple(target for r in redirects if (target := _redirect_target(r)) is not None)
            if targets:
                self.results[first:] = [
                    replace(sub, redirects=sub.redirects + targets) for sub in self.results[first:]
                ]
            for redirect in redirects:
                self._visit_redirect(redirect, position)
        elif kind == 'function':
            self.visit(node.body, position)
        elif kind in ('commandsubstitution', 'processsubstitution'):
            self.visit(node.command, replace(position, in_substitution=True))
        elif kind in ('reservedword', 'operator', 'pipe', 'tilde', 'parameter', 'heredoc'):
            pass
        else:
            # if/for/while/until bodies and anything newer: descend into children
            for child in getattr(node, 'parts', None) or ():
                if child.kind == 'word':
                    self._visit_word_children(child, position)
                else:
                    self.visit(child, position)

    def _visit_command(self, node: bashlex.ast.node, position: _Position) -> None:
        start, end = node.pos
        raw = self.source[start:end].strip()
        words: list[str] = []
        targets: list[str] = []
        nested: list[bashlex.ast.node] = []

        for part in node.parts:
            if part.kind == 'word':
                words.append(part.word)
                nested.append(part)
            elif part.kind == 'redirect':
                nested.append(part)
                if (target := _redirect_target(part)) is not None:
                    targets.append(target)
            elif part.kind == 'assignment':
                nested.append(part)

        if words:
            self._emit(words, raw, position, tuple(targets))

        for part in nested:
            if part.kind == 'redirect':
                self._visit_redirect(part, position)
            else:
                self._visit_word_children(part, position)

    def _emit(self, words: list[str], raw: str, position: _Position, redirects: tuple[str, ...]) -> None:
        program, args = _unwrap(words[0], words[1:])
        sub = SubCommand(
            program=program.lower(),
            args=tuple(args),
            raw=raw,
            in_pipeline=position.in_pipeline,
            in_substitution=position.in_substitution,
            after_separator=position.after_separator,
            redirects=redirects,
        )
        self.results.append(sub)
        self.results.extend(_shell_script_commands(sub, position, self.depth))

    def _visit_word_children(self, word: bashlex.ast.node, position: _Position) -> None:
        for child in getattr(word, 'parts', None) or ():
            if child.kind in ('commandsubstitution', 'processsubstitution'):
                self.visit(child, position)
            elif child.kind == 'word':
                self._visit_word_children(child, position)

    def _visit_redirect(self, redirect: bashlex.ast.node, position: _Position) -> None:
        target = getattr(redirect, 'output', None)
        if isinstance(target, bashlex.ast.node) and target.kind == 'word':
            self._visit_word_children(target, position)


def _redirect_target(redirect: bashlex.ast.node) -> str | None:
    """The file an output redirection writes, or None (``2>&1``, input redirects)."""
    if getattr(redirect, 'type', None) not in _OUTPUT_REDIRECTS:
        return None
    target = getattr(redirect, 'output', None)
    if not isinstance(target, bashlex.ast.node) or target.kind != 'word':
        return None
    if redirect.type == '>&' and (target.word.isdigit() or target.word == '-'):
        return None
    return target.word


def shell_script_argument(args: Sequence[str]) -> str | None:
    """Return the script passed to a shell via ``-c`` (also ``-lc``, ``-ec``...)."""
    for index, arg in enumerate(args):
        if arg == '--':
            return None
        if arg.startswith('-') and not arg.startswith('--') and 'c' in arg[1:]:
            return args[index + 1] if index + 1 < len(args) else None
        if not arg.startswith('-') and not arg.startswith('+'):
            return None
    return None


def _unwrap(program: str, args: list[str]) -> tuple[str, list[str]]:
    """Strip transparent wrappers (``env``, ``time``, ``nohup``...) off a command.

    A wrapper with nothing left to run is returned unchanged.
    """
    while (wrapper := posixpath.basename(program)) in _WRAPPERS:
        rest = _skip_wrapper_options(wrapper, args)
        if not rest:
            return program, args
        program, args = rest[0], rest[1:]
    return program, args


def _skip_wrapper_options(wrapper: str, args: list[str]) -> list[str] | None:
    """Return the wrapped command words, or None if ``wrapper`` is not wrapping one."""
    value_flags = _WRAPPER_VALUE_FLAGS.get(wrapper, frozenset())
    index = 0
    while index < len(args):
        arg = args[index]
        if arg == '--':
            index += 1
            break
        if wrapper == 'command' and arg in ('-v', '-V'):
            return None  # lookup, not execution
        if arg in value_flags:
            index += 2
            continue
        if arg.startswith('-') and len(arg) > 1:
            index += 1
            continue
        if wrapper == 'env' and '=' in arg:
            index += 1
            continue
        break

    rest = args[index:]
    if wrapper == 'timeout' and rest:
        rest = rest[1:]  # duration
    return rest
