"""Path normalization and the accept-edits path policy.

In ``acceptEdits`` mode a command is auto-approved only when it is a
recognized file-editing invocation and every file it would touch lies
inside an allowed root (the working directory or a settings
``additionalDirectories`` entry) and outside the sensitive-path list.
"""

from __future__ import annotations

__all__ = [
    'AllowedRootSet',
    'FILE_EDITORS',
    'edit_targets',
    'expand_home',
    'is_file_editing',
    'normalize_path',
    'paths_acceptable',
    'perl_in_place',
    'sed_in_place',
    'sensitive_reason',
]

import os
import posixpath
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass

from shellgate.flags import flag_value, has_any_flag, positionals
from shellgate.models import SubCommand

_REPEATED_SLASHES = re.compile(r'/{2,}')

_SYSTEM_PREFIXES = (
    '/etc/', '/usr/', '/bin/', '/sbin/', '/var/', '/opt/', '/boot/',
    '/root/', '/lib/', '/lib64/', '/proc/', '/sys/', '/dev/',
)  # fmt: skip
_SECURITY_DIRS = (
    '/.ssh/', '/.gnupg/', '/.aws/', '/.kube/', '/.docker/', '/.config/gh/',
    '/.password-store/', '/.azure/', '/.config/gcloud/',
)  # fmt: skip
_CREDENTIAL_FILES = (
    '/.npmrc', '/.netrc', '/.pypirc', '/.vault-token', '/.git-credentials',
    '/.gem/credentials', '/.m2/settings.xml', '/.gradle/gradle.properties',
    '/.nuget/NuGet.Config', '/id_rsa', '/id_ed25519', '/id_ecdsa', '/id_dsa',
)  # fmt: skip
_PASSWORD_DATABASES = frozenset({'shadow', 'gshadow', 'passwd', 'master.passwd', 'sudoers'})
_GIT_HOOK_DIRS = ('/.git/hooks/', '/.githooks/')
_LOCK_FILES = frozenset({
    'package-lock.json', 'yarn.lock', 'pnpm-lock.yaml', 'bun.lockb', 'Cargo.lock',
    'poetry.lock', 'Pipfile.lock', 'uv.lock', 'composer.lock', 'Gemfile.lock',
})  # fmt: skip
_NULL_DEVICES = frozenset({'/dev/null', '/dev/stdout', '/dev/stderr'})


def normalize_path(path: str) -> str:
    """Lexically normalize ``path``.

    Collapses repeated separators, resolves ``.`` and ``..`` segments, and
    drops trailing separators. An absolute path that normalizes to nothing
    is ``/``: ``//``, ``/./`` and ``/tmp/..`` all become ``/``.
    """
    if not path:
        return path
    return posixpath.normpath(_REPEATED_SLASHES.sub('/', path))


def expand_home(path: str) -> str:
    """Expand a leading ``~`` or ``~/``; other ``~user`` forms are left alone."""
    if path == '~' or path.startswith('~/'):
        return os.path.expanduser(path)
    return path


@dataclass(frozen=True, slots=True)
class AllowedRootSet:
    """Absolute, symlink-resolved directories that accept-edits may write under."""

    roots: tuple[str, ...]

    @classmethod
    def build(cls, cwd: str, additional: Iterable[str] = ()) -> AllowedRootSet:
        roots = [_resolve(cwd, cwd)]
        roots += [_resolve(directory, cwd) for directory in additional if directory]
        return cls(tuple(dict.fromkeys(roots)))

    def contains(self, resolved: str) -> bool:
        for root in self.roots:
            if root == '/' or resolved == root or resolved.startswith(root + '/'):
                return True
        return False


def _resolve(path: str, cwd: str) -> str:
    expanded = expand_home(path)
    absolute = expanded if expanded.startswith('/') else os.path.join(cwd, expanded)
    return os.path.realpath(absolute)


def sensitive_reason(path: str) -> str | None:
    """Why ``path`` must never be auto-edited, or None if it is not sensitive."""
    expanded = expand_home(path)
    normalized = normalize_path(expanded)
    probe = normalized if normalized.startswith('/') else '/' + normalized
    as_dir = probe.rstrip('/') + '/'

    if normalized.startswith('/') and any(as_dir.startswith(prefix) for prefix in _SYSTEM_PREFIXES):
        return f'system path {normalized}'
    if any(marker in as_dir for marker in _SECURITY_DIRS):
        return f'security directory {normalized}'
    if any(probe.endswith(name) for name in _CREDENTIAL_FILES):
        return f'credential file {normalized}'
    basename = posixpath.basename(probe)
    if basename in _PASSWORD_DATABASES:
        return f'password database {normalized}'
    if any(marker in as_dir for marker in _GIT_HOOK_DIRS):
        return f'git hook {normalized}'
    if basename in _LOCK_FILES:
        return f'lock file {normalized}'
    return None


# --- File-editing catalog ---
# Each extractor returns the file arguments the tool would rewrite, or None
# when the invocation is not an in-place edit (check mode, stdout output...).

type TargetExtractor = Callable[[Sequence[str]], list[str] | None]


def _sd(args: Sequence[str]) -> list[str] | None:
    return positionals(args, {'-f', '--flags', '-n', '--max-replacements'})[2:]


def _sad(args: Sequence[str]) -> list[str] | None:
    if not has_any_flag(args, ('--commit', '-k')):
        return None
    return positionals(args, {'--pager', '--fzf', '-f', '--flags', '-u', '--unified'})[2:]


def _ast_grep(args: Sequence[str]) -> list[str] | None:
    if not has_any_flag(args, ('-U', '--update-all')):
        return None
    found = positionals(
        args,
        {'-p', '--pattern', '-r', '--rewrite', '-l', '--lang', '-c', '--config', '--selector', '--globs', '-j'},
    )
    if found and found[0] in ('run', 'scan'):
        found = found[1:]
    return found


def _yq(args: Sequence[str]) -> list[str] | None:
    if not has_any_flag(args, ('-i', '--inplace')):
        return None
    found = positionals(args, {'-o', '--output-format', '-p', '--input-format', '--indent', '-I'})
    if flag_value(args, ('--expression',)) is not None:
        return found
    return found[1:]


def _semgrep(args: Sequence[str]) -> list[str] | None:
    if not has_any_flag(args, ('--fix', '--autofix', '-a')):
        return None
    found = positionals(
        args,
        {'--config', '-c', '-e', '--pattern', '-l', '--lang', '--include', '--exclude', '-o', '--output'},
    )
    if found and found[0] in ('scan', 'ci'):
        found = found[1:]
    return found


def _comby(args: Sequence[str]) -> list[str] | None:
    if not has_any_flag(args, ('-i', '-in-place')):
        return None
    value_flags = {'-matcher', '-f', '-d', '-directory', '-extensions', '-exclude', '-rule', '-templates', '-timeout'}
    found = positionals(args, value_flags)[2:]
    directory = flag_value(args, ('-d', '-directory'))
    if directory is not None:
        found.append(directory)
    return [target for target in found if not target.startswith('.') or '/' in target]


def _biome(args: Sequence[str]) -> list[str] | None:
    if not has_any_flag(args, ('--write', '--apply', '--apply-unsafe', '--fix')):
        return None
    return positionals(args, {'--config-path', '--max-diagnostics', '--log-level'})[1:]


def _prettier(args: Sequence[str]) -> list[str] | None:
    if not has_any_flag(args, ('--write', '-w')):
        return None
    return positionals(args, {'--config', '--ignore-path', '--plugin', '--parser', '--log-level'})


def _eslint(args: Sequence[str]) -> list[str] | None:
    if not has_any_flag(args, ('--fix',)):
        return None
    value_flags = {
        '-c', '--config', '--ext', '--rule', '--parser', '-f', '--format', '-o', '--output-file',
        '--ignore-path', '--rulesdir', '--env', '--global', '--plugin', '--cache-location', '--max-warnings',
    }  # fmt: skip
    return positionals(args, value_flags)


_RUFF_VALUE_FLAGS = frozenset({
    '--config', '--select', '--ignore', '--extend-select', '--extend-ignore', '--target-version',
    '--line-length', '--output-format', '--exclude', '--extend-exclude', '--cache-dir', '--stdin-filename',
})  # fmt: skip


def _ruff(args: Sequence[str]) -> list[str] | None:
    found = positionals(args, _RUFF_VALUE_FLAGS)
    if not found:
        return None
    subcommand, targets = found[0], found[1:]
    if has_any_flag(args, ('--diff', '--check')) and subcommand == 'format':
        return None
    if subcommand == 'format':
        return targets
    if subcommand == 'check' and has_any_flag(args, ('--fix',)) and not has_any_flag(args, ('--diff',)):
        return targets
    return None


def _black(args: Sequence[str]) -> list[str] | None:
    if has_any_flag(args, ('--check', '--diff')):
        return None
    value_flags = {
        '-l', '--line-length', '-t', '--target-version', '--config', '--include', '--exclude',
        '--extend-exclude', '--force-exclude', '-c', '--code', '--stdin-filename',
    }  # fmt: skip
    return positionals(args, value_flags)


def _isort(args: Sequence[str]) -> list[str] | None:
    if has_any_flag(args, ('--check-only', '--check', '-c', '--diff', '--stdout')):
        return None
    return positionals(args, {'--settings-path', '--sp', '-l', '--line-length', '--profile', '-p', '-s', '--skip'})


def sed_in_place(args: Sequence[str]) -> bool:
    for arg in args:
        if arg == '--':
            return False
        if arg.startswith('--in-place') or arg.startswith('-i'):
            return True
        if arg.startswith('-') and not arg.startswith('--') and arg[1:].isalpha() and 'i' in arg[1:]:
            return True
    return False


def _sed(args: Sequence[str]) -> list[str] | None:
    if not sed_in_place(args):
        return None
    found = positionals(args, {'-e', '--expression', '-f', '--file', '-l', '--line-length'})
    if flag_value(args, ('-e', '--expression', '-f', '--file')) is not None:
        return found
    return found[1:]


def perl_in_place(args: Sequence[str]) -> bool:
    for arg in args:
        if arg == '--' or not arg.startswith('-') or arg.startswith('--'):
            continue
        if arg.startswith('-i') or ('i' in arg[1:] and arg[1:].isalpha()):
            return True
    return False


def _perl(args: Sequence[str]) -> list[str] | None:
    if not perl_in_place(args):
        return None
    targets: list[str] = []
    script_given = False
    skip_next = False
    for arg in args:
        if skip_next:
            skip_next = False
            continue
        if arg.startswith('-') and arg != '-':
            # -e, -E, -pe, -pie: the next argument is the script
            if arg[1:].isalpha() and arg[-1] in ('e', 'E'):
                script_given = True
                skip_next = True
            elif arg in ('-M', '-I', '-x'):
                skip_next = True
            continue
        targets.append(arg)
    return targets if script_given else targets[1:]


FILE_EDITORS: Mapping[str, TargetExtractor] = {
    'sd': _sd,
    'sad': _sad,
    'ast-grep': _ast_grep,
    'sg': _ast_grep,
    'yq': _yq,
    'semgrep': _semgrep,
    'comby': _comby,
    'biome': _biome,
    'prettier': _prettier,
    'eslint': _eslint,
    'ruff': _ruff,
    'black': _black,
    'isort': _isort,
    'sed': _sed,
    'gsed': _sed,
    'perl': _perl,
}


def edit_targets(cmd: SubCommand) -> list[str] | None:
    """Files ``cmd`` would rewrite in place, or None if it is not a file edit."""
    extractor = FILE_EDITORS.get(cmd.base_program)
    if extractor is None:
        return None
    return extractor(cmd.args)


def is_file_editing(cmd: SubCommand) -> bool:
    return edit_targets(cmd) is not None


def paths_acceptable(commands: Sequence[SubCommand], cwd: str, roots: AllowedRootSet) -> bool:
    """True if every command is a file edit confined to safe paths under ``roots``.

    Output redirection targets count as edited files. Text bashlex could not
    parse is never acceptable, since its redirections are unknown.
    """
    if not commands:
        return False
    for cmd in commands:
        targets = edit_targets(cmd)
        if targets is None or not cmd.parsed:
            return False
        for target in (*targets, *cmd.redirects):
            if target == '-' or target in _NULL_DEVICES:
                continue
            if sensitive_reason(target) is not None:
                return False
            if not roots.contains(_resolve(target, cwd)):
                return False
    return True
