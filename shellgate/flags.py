"""Argument inspection helpers shared by rule matching, handlers, and the path policy."""

from __future__ import annotations

__all__ = [
    'first_positional',
    'flag_value',
    'has_any_flag',
    'has_flag',
    'positionals',
]

from collections.abc import Collection, Sequence

_SHORT_CLUSTER_MAX = 6


def has_flag(args: Sequence[str], flag: str) -> bool:
    """True if ``flag`` appears in ``args``.

    Recognizes the exact token, ``--long=value``, and a short flag bundled
    into a cluster such as ``-rf``. Arguments after ``--`` are not flags.
    """
    long_prefix = flag + '='
    short = len(flag) == 2 and flag[0] == '-' and flag[1] != '-'
    for arg in args:
        if arg == '--':
            return False
        if arg == flag:
            return True
        if flag.startswith('--') and arg.startswith(long_prefix):
            return True
        if short and _is_short_cluster(arg) and flag[1] in arg[1:]:
            return True
    return False


def has_any_flag(args: Sequence[str], flags: Collection[str]) -> bool:
    return any(has_flag(args, flag) for flag in flags)


def flag_value(args: Sequence[str], flags: Collection[str]) -> str | None:
    """Value given to any of ``flags``: ``-X POST``, ``--request=POST`` or ``-XPOST``."""
    for index, arg in enumerate(args):
        for flag in flags:
            if arg.startswith(flag + '='):
                return arg[len(flag) + 1 :]
            if arg == flag:
                return args[index + 1] if index + 1 < len(args) else None
            if len(flag) == 2 and not flag.startswith('--') and arg.startswith(flag) and len(arg) > 2:
                return arg[2:]
    return None


def positionals(args: Sequence[str], value_flags: Collection[str] = ()) -> list[str]:
    """Arguments that are not flags, skipping the values of ``value_flags``."""
    result: list[str] = []
    skip_next = False
    only_positional = False
    for arg in args:
        if skip_next:
            skip_next = False
            continue
        if only_positional:
            result.append(arg)
        elif arg == '--':
            only_positional = True
        elif arg in value_flags:
            skip_next = True
        elif arg.startswith('-') and arg != '-':
            continue
        else:
            result.append(arg)
    return result


def first_positional(args: Sequence[str], value_flags: Collection[str] = ()) -> str | None:
    found = positionals(args, value_flags)
    return found[0] if found else None


def _is_short_cluster(arg: str) -> bool:
    # -rf, -fdx; not -name (find) or -rf123
    return (
        len(arg) > 2
        and arg[0] == '-'
        and arg[1] != '-'
        and len(arg) <= _SHORT_CLUSTER_MAX
        and arg[1:].isalpha()
    )
