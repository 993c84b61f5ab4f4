"""``addRules`` suggestions offered with an ask decision.

The user can accept a suggestion to stop being asked about the same kind of
command, for the session, the project, or (for commands that are not tied to
one project) everywhere. Destructive and privileged commands never get one.
"""

from __future__ import annotations

__all__ = [
    'NO_SUGGESTION_PROGRAMS',
    'PROJECT_SPECIFIC_PROGRAMS',
    'RuleCandidate',
    'build_rule_pattern',
    'build_suggestions',
    'has_dangerous_flags',
    'rule_candidates',
    'wrapper_candidates',
]

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from shellgate.models import Decision, GateVerdict, SubCommand
from shellgate.parser import SHELL_PROGRAMS, shell_script_argument
from shellgate.schemas.hooks import AddRulesSuggestion, SuggestionDestination, SuggestionRule

NO_SUGGESTION_PROGRAMS = frozenset({
    'rm', 'rmdir', 'mv', 'dd', 'shred', 'mkfs', 'fdisk', 'parted', 'truncate',
    'shutdown', 'reboot', 'poweroff', 'halt', 'init',
    'sudo', 'doas', 'su', 'pkexec',
    'kill', 'pkill', 'killall', 'skill', 'slay', 'xkill',
    'chmod', 'chown', 'chgrp',
})  # fmt: skip

# Build tools, infrastructure, remote hosts, databases, and OS package
# managers: an allow rule for these belongs to one project, not the user.
PROJECT_SPECIFIC_PROGRAMS = frozenset({
    'make', 'rake', 'nx', 'turbo', 'bazel', 'buck', 'pants', 'just',
    'gradle', 'gradlew', 'mvn', 'ant', 'sbt', 'lein',
    'composer', 'bundle', 'mix', 'dotnet', 'swift',
    'aws', 'gcloud', 'az', 'terraform', 'tofu', 'pulumi', 'kubectl', 'k', 'helm', 'docker', 'podman',
    'ssh', 'scp', 'sftp', 'rsync',
    'psql', 'mysql', 'mongo', 'mongosh', 'redis-cli', 'sqlite3',
    'migrate', 'goose', 'dbmate', 'flyway', 'alembic',
    'apt', 'apt-get', 'dnf', 'yum', 'pacman', 'zypper', 'apk', 'brew', 'nix', 'nix-env', 'flatpak', 'snap',
})  # fmt: skip

# "gh pr create:*" rather than "gh pr:*", which would also allow "gh pr close"
_TWO_LEVEL_PROGRAMS = frozenset({'gh', 'aws', 'gcloud', 'az', 'kubectl', 'docker', 'podman'})

_ALWAYS_DANGEROUS_FLAGS = frozenset({'--force', '--hard', '--delete', '--del', '--delete-force', '--no-preserve-root'})
# Programs where -f means force rather than file
_F_MEANS_FORCE = frozenset({'git', 'rm', 'cp', 'mv', 'ln', 'gzip', 'bzip2', 'xz', 'zstd', 'lz4', 'pigz'})

_ALL_DESTINATIONS: Sequence[SuggestionDestination] = ('session', 'localSettings', 'userSettings')
_PROJECT_DESTINATIONS: Sequence[SuggestionDestination] = ('session', 'localSettings')


@dataclass(frozen=True, slots=True)
class RuleCandidate:
    """A ``Bash(...)`` rule body that would have allowed a command."""

    pattern: str
    project_specific: bool = False


def build_rule_pattern(cmd: SubCommand) -> str:
    """Rule body such as ``git push:*`` covering invocations like ``cmd``."""
    program = cmd.base_program
    words = [arg for arg in cmd.args if not arg.startswith('-')]
    if not words:
        return f'{program}:*'

    first = cmd.args[cmd.args.index(words[0]) :]
    if program in _TWO_LEVEL_PROGRAMS:
        rest = [arg for arg in first[1:] if not arg.startswith('-')]
        if rest and '/' not in rest[0] and '.' not in rest[0]:
            return f'{program} {words[0]} {rest[0]}:*'
    return f'{program} {words[0]}:*'


def has_dangerous_flags(cmd: SubCommand) -> bool:
    program = cmd.base_program
    for arg in cmd.args:
        if arg.startswith('-') and not arg.startswith('--'):
            cluster = arg[1:]
            if ('r' in cluster or 'R' in cluster) and 'f' in cluster:
                return True
        if arg in _ALWAYS_DANGEROUS_FLAGS:
            return True
        if arg == '-f' and program in _F_MEANS_FORCE:
            return True
        if arg == '-D' and program == 'git':
            return True
    return False


def rule_candidates(cmd: SubCommand, verdict: GateVerdict) -> Sequence[RuleCandidate]:
    """The rule to suggest for ``cmd``, if its verdict asked and it is safe to offer one."""
    if verdict.decision is not Decision.ASK:
        return []
    if cmd.base_program in NO_SUGGESTION_PROGRAMS or has_dangerous_flags(cmd):
        return []
    if cmd.base_program in SHELL_PROGRAMS and shell_script_argument(cmd.args) is not None:
        return []  # the script's own commands carry the candidates
    return [RuleCandidate(build_rule_pattern(cmd), cmd.base_program in PROJECT_SPECIFIC_PROGRAMS)]


def wrapper_candidates(cmd: SubCommand, canonical: str) -> Sequence[RuleCandidate]:
    """Rules for a task or script invocation (``mise run lint``, ``pnpm run build``).

    Shorthand invocations (``pnpm build``) get a rule for that form too.
    Tasks and scripts differ per project, so these are never user-wide.
    """
    candidates = [RuleCandidate(f'{canonical}:*', project_specific=True)]
    if cmd.args and cmd.args[0] not in ('run', 'r', 'exec'):
        shorthand = f'{cmd.base_program} {cmd.args[0]}'
        if shorthand != canonical:
            candidates.append(RuleCandidate(f'{shorthand}:*', project_specific=True))
    return candidates


def build_suggestions(candidates: Iterable[RuleCandidate]) -> list[AddRulesSuggestion]:
    """One ``addRules`` suggestion per destination, covering every candidate."""
    pool = list(candidates)
    if not pool:
        return []
    patterns = list(dict.fromkeys(candidate.pattern for candidate in pool))
    destinations = _PROJECT_DESTINATIONS if any(c.project_specific for c in pool) else _ALL_DESTINATIONS
    return [
        AddRulesSuggestion(
            rules=[SuggestionRule(rule_content=pattern) for pattern in patterns],
            destination=destination,
        )
        for destination in destinations
    ]
