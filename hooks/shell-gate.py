#!/usr/bin/env -S uv run --quiet --no-project --script
"""PreToolUse / PermissionRequest hook: allow, ask, or deny Bash commands.

Every Bash command the agent wants to run is decomposed with bashlex,
scanned for dangerous idioms, and checked against per-program rule tables.
The permission lists of the settings hierarchy and the session's
permission mode are then applied on top:

  1. a gate blocks                  -> deny
  2. a settings deny rule matches   -> deny
  3. acceptEdits + path-safe edits  -> allow
  4. a settings ask / allow rule    -> ask / allow
  5. otherwise                      -> the gate decision

On PermissionRequest, only definite decisions are answered: allow and deny
are returned, anything else produces no output so the built-in prompt shows.

Malformed input and internal errors fail closed to ask, never to allow.

Hook docs: https://code.claude.com/docs/en/hooks#pretooluse
"""

# /// script
# requires-python = ">=3.12"
# dependencies = [
#   "bashlex",
#   "pydantic>=2.0.0",
#   "shellgate",
# ]
#
# [tool.uv.sources]
# shellgate = { path = "../", editable = true }
# ///
from __future__ import annotations

__all__ = [
    'decide',
    'main',
    'respond_to_permission_request',
]

import json
import logging
import sys

import pydantic
from shellgate.error_boundary import ErrorBoundary, report_traceback
from shellgate.models import Decision, GateVerdict
from shellgate.pipeline import GateContext, evaluate, evaluate_with_suggestions
from shellgate.schemas.hooks import (
    AddRulesSuggestion,
    BashToolInput,
    HookInput,
    PermissionRequestBehavior,
    PermissionRequestDecision,
    PermissionRequestHookOutput,
    PreToolUseDecision,
    PreToolUseHookOutput,
)

# --- Error boundary (process-level) ---
# On any error: answer ask, report on stderr, exit 0. The runtime then prompts.

boundary = ErrorBoundary(exit_code=0)


@boundary.handler(pydantic.ValidationError)
@boundary.handler(json.JSONDecodeError)
def _handle_invalid_input(exc: ValueError) -> None:
    detail = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
    print(f'shell-gate: invalid hook input: {exc}', file=sys.stderr)
    decide(Decision.ASK, f'Invalid hook input: {detail}')


@boundary.handler(Exception)
def _handle_error(exc: Exception) -> None:
    print(f'shell-gate hook error: {exc!r}', file=sys.stderr)
    report_traceback(exc)
    decide(Decision.ASK, 'Internal error, requesting manual approval')


# --- Output ---


def decide(
    decision: Decision,
    reason: str | None,
    suggestions: list[AddRulesSuggestion] | None = None,
    context: str | None = None,
) -> None:
    """Emit a PreToolUse permission decision to stdout."""
    output = PreToolUseHookOutput(
        hook_specific_output=PreToolUseDecision(
            permission_decision=decision.permission,
            permission_decision_reason=reason,
            suggestions=suggestions or None,
            additional_context=context,
        )
    )
    print(output.model_dump_json(by_alias=True, exclude_none=True))


def respond_to_permission_request(verdict: GateVerdict) -> None:
    """Answer a PermissionRequest only when the decision is definite."""
    if verdict.decision is Decision.ALLOW:
        behavior = PermissionRequestBehavior(behavior='allow')
    elif verdict.decision is Decision.BLOCK:
        behavior = PermissionRequestBehavior(behavior='deny', message=verdict.reason or 'Blocked')
    else:
        return
    output = PermissionRequestHookOutput(hook_specific_output=PermissionRequestDecision(decision=behavior))
    print(output.model_dump_json(by_alias=True, exclude_none=True))


# --- Entry point ---


@boundary
def main() -> None:
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr, format='shell-gate: %(levelname)s %(message)s')

    hook_data = HookInput.model_validate_json(sys.stdin.read())
    if not hook_data.is_bash:
        return  # not our tool; empty output defers to built-in permissions

    command = BashToolInput.model_validate(hook_data.tool_input).command
    if not command.strip():
        return

    context = GateContext.load(hook_data.cwd, hook_data.permission_mode)

    if hook_data.hook_event_name == 'PermissionRequest':
        respond_to_permission_request(evaluate(command, context))
        return

    evaluation = evaluate_with_suggestions(command, context)
    verdict = evaluation.verdict
    decide(verdict.decision, verdict.reason, list(evaluation.suggestions), verdict.hint)


if __name__ == '__main__':
    main()
