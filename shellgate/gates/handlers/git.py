"""git: subcommands whose risk depends on flags rather than the verb alone."""

from __future__ import annotations

__all__ = [
    'check_git',
    'strip_global_options',
]

from collections.abc import Sequence

from shellgate.flags import has_any_flag, has_flag, positionals
from shellgate.gates.registry import handler
from shellgate.gates.tables import Program
from shellgate.models import GateVerdict, SubCommand

# Global options that take a separate value: git -C dir status
_GLOBAL_VALUE_OPTIONS = frozenset({'-C', '-c', '--git-dir', '--work-tree', '--namespace', '--exec-path'})

# Subcommands where -n means --dry-run rather than something else.
_DRY_RUN_N = frozenset({'add', 'clean', 'rm', 'mv', 'push'})

_FORCE_PUSH_HINT = 'Use --force-with-lease to avoid overwriting commits pushed by others.'


def strip_global_options(args: Sequence[str]) -> list[str]:
    """Drop options given before the subcommand (``-C``, ``-c k=v``, ``--no-pager``...)."""
    index = 0
    while index < len(args) and args[index].startswith('-'):
        arg = args[index]
        if arg in ('--version', '--help', '-h'):
            break
        if arg in _GLOBAL_VALUE_OPTIONS:
            index += 1
        index += 1
    return list(args[index:])


def _is_dry_run(subcommand: str, rest: Sequence[str]) -> bool:
    if has_flag(rest, '--dry-run'):
        return True
    return subcommand in _DRY_RUN_N and has_flag(rest, '-n')


def _push(rest: Sequence[str]) -> GateVerdict | None:
    refspecs = positionals(rest, {'--repo', '-o', '--push-option', '--receive-pack', '--exec'})
    lease = has_any_flag(rest, ('--force-with-lease', '--force-if-includes'))
    if has_any_flag(rest, ('--force', '-f')) or (not lease and any(ref.startswith('+') for ref in refspecs[1:])):
        return GateVerdict.ask('git: Force push', hint=_FORCE_PUSH_HINT)
    if has_any_flag(rest, ('--delete', '-d')) or any(ref.startswith(':') for ref in refspecs[1:]):
        return GateVerdict.ask('git: Deleting remote branch')
    return None


def _branch(rest: Sequence[str]) -> GateVerdict:
    if has_any_flag(rest, ('-d', '-D', '--delete')):
        return GateVerdict.ask('git: Deleting branch')
    if has_any_flag(rest, ('-m', '-M', '--move')):
        return GateVerdict.ask('git: Renaming branch')
    if has_any_flag(rest, ('-c', '-C', '--copy')):
        return GateVerdict.ask('git: Copying branch')
    if has_any_flag(rest, ('-u', '--set-upstream-to', '--unset-upstream', '--edit-description')):
        return GateVerdict.ask('git: Changing branch configuration')
    listing = has_any_flag(rest, ('-l', '--list', '-a', '--all', '-r', '--remotes', '--show-current', '--contains'))
    if listing or not positionals(rest, {'--sort', '--format', '--merged', '--no-merged', '--points-at'}):
        return GateVerdict.allow()
    return GateVerdict.ask('git: Creating branch')


def _tag(rest: Sequence[str]) -> GateVerdict:
    if has_any_flag(rest, ('-d', '--delete')):
        return GateVerdict.ask('git: Deleting tag')
    if has_any_flag(rest, ('-l', '--list', '-v', '--verify')):
        return GateVerdict.allow()
    if positionals(rest, {'-m', '--message', '-F', '--file', '--sort', '--format', '-u', '--local-user'}):
        return GateVerdict.ask('git: Creating tag')
    return GateVerdict.allow()


def _config(rest: Sequence[str]) -> GateVerdict:
    read_flags = ('--get', '--get-all', '--get-regexp', '--get-urlmatch', '-l', '--list', '--show-origin')
    if has_any_flag(rest, read_flags):
        return GateVerdict.allow()
    values = positionals(rest, {'-f', '--file', '--blob', '--type', '--default'})
    if values and values[0] in ('get', 'list'):
        return GateVerdict.allow()
    if len(values) == 1 and not has_any_flag(rest, ('--unset', '--unset-all', '--remove-section', '--rename-section')):
        return GateVerdict.allow()
    return GateVerdict.ask('git: Changing config')


def _checkout(rest: Sequence[str]) -> GateVerdict:
    if '--' in rest or '.' in rest:
        return GateVerdict.ask('git: Discarding changes')
    if has_any_flag(rest, ('-f', '--force')):
        return GateVerdict.ask('git: Forced checkout (discards local changes)')
    if has_any_flag(rest, ('-b', '-B', '--orphan')):
        return GateVerdict.ask('git: Creating branch')
    return GateVerdict.ask('git: Switching branches')


@handler('git')
def check_git(cmd: SubCommand, program: Program) -> GateVerdict:
    args = strip_global_options(cmd.args)
    if not args:
        return GateVerdict.allow()
    subcommand, rest = args[0], args[1:]

    if _is_dry_run(subcommand, rest):
        return GateVerdict.allow('Dry run')

    match subcommand:
        case 'push':
            verdict = _push(rest)
            if verdict is not None:
                return verdict
        case 'reset' if has_flag(rest, '--hard'):
            return GateVerdict.ask('git: Hard reset (discards uncommitted changes)')
        case 'clean' if has_any_flag(rest, ('-f', '--force')):
            return GateVerdict.ask('git: Deleting untracked files')
        case 'branch':
            return _branch(rest)
        case 'tag':
            return _tag(rest)
        case 'config':
            return _config(rest)
        case 'checkout':
            return _checkout(rest)

    return program.evaluate(cmd.with_args(cmd.program, args))
