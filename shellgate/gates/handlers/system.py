"""Handlers for privilege escalation, shells, and commands that wrap commands."""

from __future__ import annotations

__all__ = [
    'check_database',
    'check_inline_script',
    'check_make',
    'check_pacman',
    'check_shell',
    'check_sudo',
    'check_xargs',
    'describe_privileged',
]

from collections.abc import Sequence

from shellgate import scanner
from shellgate.flags import flag_value, has_any_flag, positionals
from shellgate.gates import engine
from shellgate.gates.registry import handler
from shellgate.gates.tables import Program
from shellgate.models import Decision, GateVerdict, SubCommand, combine
from shellgate.parser import parse_commands, shell_script_argument

# --- sudo / doas ---

_SUDO_VALUE_FLAGS = frozenset({'-u', '-g', '-p', '-r', '-t', '-C', '-D', '-h', '-U'})
_SUDO_SAFE_FLAGS = frozenset({'-l', '--list', '-v', '--validate', '-k', '--reset-timestamp', '-K', '-V', '--version'})


def _split_privileged(args: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split sudo arguments into its own options and the command it runs."""
    options: list[str] = []
    index = 0
    while index < len(args):
        arg = args[index]
        if arg == '--':
            index += 1
            break
        if not arg.startswith('-'):
            break
        options.append(arg)
        if arg in _SUDO_VALUE_FLAGS and index + 1 < len(args):
            options.append(args[index + 1])
            index += 1
        index += 1
    return options, list(args[index:])


_APT_ACTIONS = {
    'install': 'Installing packages (apt)',
    'remove': 'Removing packages (apt)',
    'purge': 'Removing packages (apt)',
    'update': 'Updating package lists (apt)',
    'upgrade': 'Upgrading packages (apt)',
    'dist-upgrade': 'Upgrading packages (apt)',
    'full-upgrade': 'Upgrading packages (apt)',
    'autoremove': 'Removing unused packages (apt)',
}
_DNF_ACTIONS = {
    'install': 'Installing packages (dnf)',
    'remove': 'Removing packages (dnf)',
    'erase': 'Removing packages (dnf)',
    'update': 'Upgrading packages (dnf)',
    'upgrade': 'Upgrading packages (dnf)',
}
_FILE_ACTIONS = {
    'rm': 'Removing files',
    'cp': 'Copying files',
    'mv': 'Moving files',
    'chmod': 'Changing permissions',
    'chown': 'Changing ownership',
    'mkdir': 'Creating directory',
}


def describe_privileged(program: str, args: Sequence[str]) -> str:
    """Human description of what an elevated command will do."""
    action = args[0] if args else 'operation'
    if program in ('apt', 'apt-get'):
        return _APT_ACTIONS.get(action, f'apt {action}')
    if program in ('dnf', 'yum'):
        return _DNF_ACTIONS.get(action, f'dnf {action}')
    if program == 'pacman':
        if 'S' in action:
            return 'Installing/syncing packages (pacman)'
        if 'R' in action:
            return 'Removing packages (pacman)'
        if 'U' in action:
            return 'Upgrading packages (pacman)'
        return f'pacman {action}'
    if program == 'systemctl':
        return f'systemctl {action}'
    if program == 'service':
        operation = args[1] if len(args) > 1 else 'operation'
        return f'service {args[0] if args else "service"} {operation}'
    if program in _FILE_ACTIONS:
        return _FILE_ACTIONS[program]
    return f"Running '{program}'"


@handler('sudo')
def check_sudo(cmd: SubCommand, program: Program) -> GateVerdict:
    label = cmd.base_program
    options, words = _split_privileged(cmd.args)

    if not words:
        if any(option in _SUDO_SAFE_FLAGS for option in options):
            return GateVerdict.allow()
        return GateVerdict.ask(f'{label}: Elevated privileges')

    inner = cmd.with_args(words[0], words[1:])
    inner_verdict = engine.evaluate_subcommand(inner)
    if inner_verdict.decision is Decision.BLOCK:
        return GateVerdict.block(f'{label}: {inner_verdict.reason}', inner_verdict.hint)
    return GateVerdict.ask(f'{label}: {describe_privileged(inner.base_program, inner.args)}')


# --- pacman ---


@handler('pacman')
def check_pacman(cmd: SubCommand, program: Program) -> GateVerdict:
    label = cmd.base_program
    if not cmd.args:
        return GateVerdict.allow()

    first = cmd.args[0]
    if first.startswith('-Q') or first == '--query':
        return GateVerdict.allow()
    if first in ('-V', '--version', '-h', '--help'):
        return GateVerdict.allow()
    if first.startswith('-S') or first == '--sync':
        if first in ('-Ss', '-Si', '-Sl', '-Sg'):
            return GateVerdict.allow()
        return GateVerdict.ask(f'{label}: Installing/syncing packages')
    if first.startswith('-R') or first == '--remove':
        return GateVerdict.ask(f'{label}: Removing packages')
    if first.startswith('-U') or first == '--upgrade':
        return GateVerdict.ask(f'{label}: Upgrading packages')
    if first.startswith('-F') or first == '--files':
        if 'y' in first:
            return GateVerdict.ask(f'{label}: Syncing file database')
        return GateVerdict.allow()
    return program.evaluate(cmd)


# --- shells ---


@handler('shell')
def check_shell(cmd: SubCommand, program: Program) -> GateVerdict:
    """``bash -c`` scripts are parsed and checked as their own commands."""
    label = cmd.base_program
    script = shell_script_argument(cmd.args)
    if script is not None:
        return check_inline_script(script)
    if has_any_flag(cmd.args, ('--version', '--help', '-n')):
        return GateVerdict.allow()
    if has_any_flag(cmd.args, ('-c',)):
        return GateVerdict.ask(f'{label}: Inline script could not be inspected')
    script = next((arg for arg in cmd.args if not arg.startswith('-')), None)
    if script is None:
        return GateVerdict.ask(f'{label}: Interactive shell')
    return GateVerdict.ask(f'{label}: Running script {script}')


def check_inline_script(script: str) -> GateVerdict:
    """Strictest verdict over everything ``script`` runs, raw-text idioms included.

    Commands that wrap a shell (``sudo``, ``xargs``, ``find -exec``) reach
    the script only through here.
    """
    verdicts = [*scanner.scan(script), *(engine.evaluate_subcommand(inner) for inner in parse_commands(script))]
    verdict = combine(verdicts)
    return GateVerdict.allow() if verdict.decision is Decision.ALLOW else verdict


# --- databases ---

_SQL_READ_PREFIXES = ('SELECT', 'SHOW', 'DESCRIBE', 'DESC ', 'EXPLAIN', '\\D', '\\L')
_REDIS_READ_COMMANDS = frozenset({
    'GET', 'MGET', 'HGET', 'HGETALL', 'KEYS', 'SCAN', 'TYPE', 'TTL', 'EXISTS', 'INFO', 'DBSIZE', 'PING',
})  # fmt: skip
_SQLITE_READ_DOTS = frozenset({'.tables', '.schema', '.databases', '.indexes'})


def _is_read_query(query: str | None) -> bool:
    if query is None:
        return False
    statement = query.strip().upper()
    return statement.startswith(_SQL_READ_PREFIXES) and ';' not in statement.rstrip(';')


@handler('database')
def check_database(cmd: SubCommand, program: Program) -> GateVerdict:
    label = cmd.base_program
    args = cmd.args
    if has_any_flag(args, ('--version', '-V', '--help')):
        return GateVerdict.allow()

    match label:
        case 'psql':
            if has_any_flag(args, ('-l', '--list')):
                return GateVerdict.allow()
            if has_any_flag(args, ('-f', '--file')):
                return GateVerdict.ask('psql: Executing SQL file (may contain writes)')
            if has_any_flag(args, ('-c', '--command')):
                if _is_read_query(flag_value(args, ('-c', '--command'))):
                    return GateVerdict.allow()
                return GateVerdict.ask('psql: Executing query')
        case 'mysql' | 'mariadb':
            if has_any_flag(args, ('-e', '--execute')):
                if _is_read_query(flag_value(args, ('-e', '--execute'))):
                    return GateVerdict.allow()
                return GateVerdict.ask(f'{label}: Executing query')
        case 'sqlite3':
            if '-readonly' in args or any(arg in _SQLITE_READ_DOTS for arg in args):
                return GateVerdict.allow()
            statements = positionals(args, {'-cmd', '-separator', '-newline', '-nullvalue'})[1:]
            if statements and all(_is_read_query(statement) for statement in statements):
                return GateVerdict.allow()
            return GateVerdict.ask('sqlite3: Database access')
        case 'redis-cli':
            words = positionals(args, {'-h', '-p', '-a', '-n', '-u', '--user', '--pass'})
            if words and words[0].upper() in _REDIS_READ_COMMANDS:
                return GateVerdict.allow()
            return GateVerdict.ask('redis-cli: Redis command')
        case 'mongosh' | 'mongo':
            if has_any_flag(args, ('--eval',)):
                return GateVerdict.ask(f'{label}: Executing command')
    return GateVerdict.ask(f'{label}: Database session')


# --- make ---

_MAKE_SAFE_TARGETS = frozenset({
    'test', 'tests', 'check', 'lint', 'build', 'all', 'clean', 'format', 'fmt', 'typecheck', 'dev', 'run', 'help',
})  # fmt: skip
_MAKE_VALUE_FLAGS = frozenset({'-C', '--directory', '-f', '--file', '--makefile', '-I', '--include-dir', '-j', '--jobs', '-o', '-W'})


@handler('make')
def check_make(cmd: SubCommand, program: Program) -> GateVerdict:
    args = cmd.args
    if has_any_flag(args, ('-n', '--dry-run', '--just-print', '--recon', '-p', '--print-data-base', '-q', '--question')):
        return GateVerdict.allow()
    if has_any_flag(args, ('-v', '--version', '-h', '--help')):
        return GateVerdict.allow()

    targets = [arg for arg in positionals(args, _MAKE_VALUE_FLAGS) if '=' not in arg]
    if not targets:
        return GateVerdict.ask("make: Running target 'default'")
    unsafe = [target for target in targets if target not in _MAKE_SAFE_TARGETS]
    if unsafe:
        return GateVerdict.ask(f"make: Running target '{unsafe[0]}'")
    return GateVerdict.allow()


# --- xargs ---

_XARGS_VALUE_FLAGS = frozenset({
    '-I', '-n', '-P', '-L', '-s', '-d', '-E', '-a',
    '--max-args', '--max-procs', '--max-lines', '--replace', '--delimiter', '--arg-file', '--eof',
})  # fmt: skip


@handler('xargs')
def check_xargs(cmd: SubCommand, program: Program) -> GateVerdict:
    args = list(cmd.args)
    index = 0
    while index < len(args) and args[index].startswith('-'):
        if args[index] in _XARGS_VALUE_FLAGS:
            index += 1
        index += 1

    words = args[index:]
    if not words:
        return GateVerdict.allow()  # defaults to echo

    inner = cmd.with_args(words[0], words[1:])
    inner_verdict = engine.evaluate_subcommand(inner)
    if inner_verdict.decision is Decision.ALLOW:
        return inner_verdict
    return GateVerdict(inner_verdict.decision, f'xargs: {inner_verdict.reason}', inner_verdict.hint)
