"""Handlers for file-manipulating commands whose risk depends on their targets."""

from __future__ import annotations

__all__ = [
    'check_fd',
    'check_find',
    'check_perl',
    'check_rm',
    'check_sed',
    'check_tar',
    'check_tee',
]

from collections.abc import Sequence

from shellgate.flags import has_any_flag, positionals
from shellgate.gates import engine
from shellgate.gates.registry import handler
from shellgate.gates.tables import Program
from shellgate.models import Decision, GateVerdict, SubCommand
from shellgate.paths import normalize_path, perl_in_place, sed_in_place

# Targets whose deletion is unrecoverable for the whole machine or home.
_CATASTROPHIC_TARGETS = frozenset({
    '/', '/*', '~', '~/', '~/*',
    '$HOME', '${HOME}', '$HOME/', '${HOME}/', '$HOME/*', '${HOME}/*',
})  # fmt: skip


@handler('rm')
def check_rm(cmd: SubCommand, program: Program) -> GateVerdict:
    targets = positionals(cmd.args)

    for target in targets:
        if target in _CATASTROPHIC_TARGETS or normalize_path(target) in _CATASTROPHIC_TARGETS:
            return GateVerdict.block(f"rm '{target}' blocked (catastrophic data loss)")
        if target.startswith('/') and '..' in target.split('/'):
            return GateVerdict.block(f"rm '{target}' blocked (path traversal to root)")

    for target in targets:
        if target in ('*', '..') or target.startswith('../') or '/../' in target or target.endswith('/..'):
            return GateVerdict.ask(f"rm with '{target}' (verify target)")

    if has_any_flag(cmd.args, ('-r', '-R', '--recursive')):
        return GateVerdict.ask('rm: Recursive delete', hint='Deletes whole directory trees; check the targets.')
    return GateVerdict.ask('rm: Deleting file(s)')


@handler('sed')
def check_sed(cmd: SubCommand, program: Program) -> GateVerdict:
    if sed_in_place(cmd.args):
        return GateVerdict.ask(f'{cmd.base_program}: In-place edit')
    return GateVerdict.allow()


@handler('perl')
def check_perl(cmd: SubCommand, program: Program) -> GateVerdict:
    if perl_in_place(cmd.args):
        return GateVerdict.ask('perl: In-place edit')
    if has_any_flag(cmd.args, ('-v', '--version', '-h', '--help', '-c')):
        return GateVerdict.allow()
    # -ne / -pe one-liners are stream filters; anything else runs a program
    if has_any_flag(cmd.args, ('-n', '-p')) and has_any_flag(cmd.args, ('-e', '-E')):
        return GateVerdict.allow()
    return program.evaluate(cmd)


@handler('tar')
def check_tar(cmd: SubCommand, program: Program) -> GateVerdict:
    args = list(cmd.args)
    # Old-style bundled mode: tar xzf archive.tgz
    if args and not args[0].startswith('-') and args[0].isalpha():
        args[0] = '-' + args[0]

    if has_any_flag(args, ('-t', '--list')):
        return GateVerdict.allow()
    if has_any_flag(args, ('-x', '--extract', '--get')):
        return GateVerdict.ask('tar: Extracting archive')
    if has_any_flag(args, ('-c', '--create', '-r', '--append', '-u', '--update', '-A', '--concatenate')):
        return GateVerdict.ask('tar: Creating archive')
    if has_any_flag(args, ('--delete',)):
        return GateVerdict.ask('tar: Deleting from archive')
    return program.evaluate(cmd)


@handler('tee')
def check_tee(cmd: SubCommand, program: Program) -> GateVerdict:
    files = [target for target in positionals(cmd.args) if target != '/dev/null']
    if not files:
        return GateVerdict.allow()
    return GateVerdict.ask('tee: Writing to file')


# find actions that run or delete; each maps to the reason used when asking
_FIND_EXEC_ACTIONS = ('-exec', '-execdir', '-ok', '-okdir')
_FIND_WRITE_ACTIONS = {
    '-delete': 'Deleting files',
    '-fprint': 'Writing to file',
    '-fprint0': 'Writing to file',
    '-fprintf': 'Writing to file',
    '-fls': 'Writing to file',
}


@handler('find')
def check_find(cmd: SubCommand, program: Program) -> GateVerdict:
    for arg in cmd.args:
        if arg in _FIND_WRITE_ACTIONS:
            return GateVerdict.ask(f'find: {_FIND_WRITE_ACTIONS[arg]}')

    verdicts = [_nested_verdict('find', cmd, words) for words in _exec_commands(cmd.args, _FIND_EXEC_ACTIONS)]
    return _strictest_nested(verdicts)


@handler('fd')
def check_fd(cmd: SubCommand, program: Program) -> GateVerdict:
    exec_flags = ('-x', '--exec', '-X', '--exec-batch')
    verdicts = [_nested_verdict('fd', cmd, words) for words in _exec_commands(cmd.args, exec_flags)]
    return _strictest_nested(verdicts)


def _exec_commands(args: Sequence[str], exec_flags: Sequence[str]) -> list[list[str]]:
    """Command words following each exec-style flag, up to ``;`` or ``+``."""
    found: list[list[str]] = []
    index = 0
    while index < len(args):
        if args[index] in exec_flags:
            words: list[str] = []
            index += 1
            while index < len(args) and args[index] not in (';', '+', '\\;'):
                words.append(args[index])
                index += 1
            if words:
                found.append(words)
        index += 1
    return found


def _nested_verdict(label: str, cmd: SubCommand, words: list[str]) -> GateVerdict:
    nested = cmd.with_args(words[0], [word for word in words[1:] if word != '{}'])
    verdict = engine.evaluate_subcommand(nested)
    if verdict.decision is Decision.ALLOW:
        return verdict
    return GateVerdict(verdict.decision, f'{label} executing {verdict.reason}', verdict.hint)


def _strictest_nested(verdicts: list[GateVerdict]) -> GateVerdict:
    if not verdicts:
        return GateVerdict.allow()
    return max(verdicts, key=lambda verdict: verdict.decision)
