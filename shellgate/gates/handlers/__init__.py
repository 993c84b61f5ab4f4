"""Custom handlers; importing this package registers them."""

from __future__ import annotations

from shellgate.gates.handlers import filesystem, git, network, system

__all__ = [
    'filesystem',
    'git',
    'network',
    'system',
]
