"""Handlers for HTTP clients and raw network tools."""

from __future__ import annotations

__all__ = [
    'check_curl',
    'check_gh',
    'check_httpie',
    'check_netcat',
    'check_wget',
]

from collections.abc import Sequence

from shellgate.flags import flag_value, has_any_flag, positionals
from shellgate.gates.registry import handler
from shellgate.gates.tables import Program
from shellgate.models import GateVerdict, SubCommand

_READ_METHODS = frozenset({'GET', 'HEAD', 'OPTIONS'})
_HTTP_METHODS = frozenset({'GET', 'HEAD', 'OPTIONS', 'POST', 'PUT', 'PATCH', 'DELETE'})

# --- curl ---

_CURL_DATA_FLAGS = (
    '-d', '--data', '--data-raw', '--data-binary', '--data-urlencode', '--json',
    '-F', '--form', '--form-string', '-T', '--upload-file',
)  # fmt: skip
_CURL_OUTPUT_FLAGS = ('-o', '--output', '-O', '--remote-name', '--remote-name-all', '--output-dir')


@handler('curl')
def check_curl(cmd: SubCommand, program: Program) -> GateVerdict:
    args = cmd.args
    if has_any_flag(args, ('--version', '-V', '--help', '-h', '--manual', '-M')):
        return GateVerdict.allow()

    method = flag_value(args, ('-X', '--request'))
    if method is not None and method.upper() not in _READ_METHODS:
        return GateVerdict.ask(f'curl: {method.upper()} request')
    if has_any_flag(args, _CURL_DATA_FLAGS):
        return GateVerdict.ask('curl: Sending data')
    if has_any_flag(args, _CURL_OUTPUT_FLAGS):
        target = flag_value(args, ('-o', '--output'))
        if target not in ('-', '/dev/null'):
            return GateVerdict.ask('curl: Downloading to file')
    return GateVerdict.allow()


# --- wget ---


@handler('wget')
def check_wget(cmd: SubCommand, program: Program) -> GateVerdict:
    args = cmd.args
    if has_any_flag(args, ('--version', '-V', '--help', '-h', '--spider')):
        return GateVerdict.allow()

    method = flag_value(args, ('--method',))
    if method is not None and method.upper() not in _READ_METHODS:
        return GateVerdict.ask(f'wget: {method.upper()} request')
    if has_any_flag(args, ('--post-data', '--post-file', '--body-data', '--body-file')):
        return GateVerdict.ask('wget: Sending data')
    if flag_value(args, ('-O', '--output-document')) in ('-', '/dev/null'):
        return GateVerdict.allow()
    if any(arg.startswith('-') and not arg.startswith('--') and arg.endswith('O-') for arg in args):
        return GateVerdict.allow()  # -qO-
    return GateVerdict.ask('wget: Downloading file')


# --- netcat ---


@handler('netcat')
def check_netcat(cmd: SubCommand, program: Program) -> GateVerdict:
    label = cmd.base_program
    args = cmd.args
    if has_any_flag(args, ('-e', '-c', '--exec', '--sh-exec', '--lua-exec')):
        return GateVerdict.block(
            'Netcat -e blocked (reverse shell risk)',
            hint='Executing a program over a network socket is how reverse shells are built.',
        )
    if has_any_flag(args, ('-h', '--help', '--version')):
        return GateVerdict.allow()
    if has_any_flag(args, ('-l', '--listen')):
        return GateVerdict.ask(f'{label}: Opening a listener')
    if has_any_flag(args, ('-z',)):
        return GateVerdict.allow('Port scan without data')
    return GateVerdict.ask(f'{label}: Network connection')


# --- HTTPie / xh ---


def _httpie_method(args: Sequence[str]) -> str:
    items = positionals(args, {'-a', '--auth', '-A', '--auth-type', '-o', '--output', '--session', '--verify'})
    if items and items[0].upper() in _HTTP_METHODS:
        return items[0].upper()
    request_items = items[1:]
    has_body = any(('=' in item and '==' not in item) or '@' in item for item in request_items)
    if has_body or has_any_flag(args, ('-f', '--form', '--raw')):
        return 'POST'
    return 'GET'


@handler('httpie')
def check_httpie(cmd: SubCommand, program: Program) -> GateVerdict:
    if has_any_flag(cmd.args, ('--version', '--help')):
        return GateVerdict.allow()
    method = _httpie_method(cmd.args)
    if method in _READ_METHODS:
        if has_any_flag(cmd.args, ('-d', '--download', '-o', '--output')):
            return GateVerdict.ask(f'{cmd.base_program}: Downloading to file')
        return GateVerdict.allow()
    return GateVerdict.ask(f'{cmd.base_program}: {method} request')


# --- gh ---

_GH_FIELD_FLAGS = ('-f', '--raw-field', '-F', '--field', '--input')


@handler('gh')
def check_gh(cmd: SubCommand, program: Program) -> GateVerdict:
    """``gh api`` depends on the HTTP method; everything else is table-driven."""
    if not cmd.args or cmd.args[0] != 'api':
        return program.evaluate(cmd)

    args = cmd.args[1:]
    method = flag_value(args, ('-X', '--method'))
    if method is None:
        method = 'POST' if has_any_flag(args, _GH_FIELD_FLAGS) else 'GET'
    method = method.upper()

    endpoint = next((arg for arg in positionals(args, {'-X', '--method', '-H', '--header', '-q', '--jq'})), '')
    if endpoint == 'graphql':
        query = flag_value(args, ('-f', '--raw-field', '-F', '--field')) or ''
        if 'mutation' in query:
            return GateVerdict.ask('gh api: GraphQL mutation')
        return GateVerdict.allow()

    if method in _READ_METHODS:
        return GateVerdict.allow()
    return GateVerdict.ask(f'gh api: {method} request')
