"""shellgate - allow, ask, or deny shell commands issued by a coding agent."""

from __future__ import annotations

from shellgate.error_boundary import ErrorBoundary
from shellgate.models import Decision, GateVerdict, SubCommand, combine
from shellgate.parser import parse_commands
from shellgate.pipeline import Evaluation, GateContext, check_command, evaluate, evaluate_with_suggestions
from shellgate.settings import Settings, load_settings

__all__ = [
    'Decision',
    'ErrorBoundary',
    'Evaluation',
    'GateContext',
    'GateVerdict',
    'Settings',
    'SubCommand',
    'check_command',
    'combine',
    'evaluate',
    'evaluate_with_suggestions',
    'load_settings',
    'parse_commands',
]
