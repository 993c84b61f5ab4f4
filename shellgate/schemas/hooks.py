"""Hook input/output schemas for the PreToolUse and PermissionRequest events.

Output models serialize with ``model_dump_json(by_alias=True, exclude_none=True)``.

See: https://code.claude.com/docs/en/hooks
"""

from __future__ import annotations

__all__ = [
    'AddRulesSuggestion',
    'BashToolInput',
    'HookInput',
    'PermissionRequestBehavior',
    'PermissionRequestDecision',
    'PermissionRequestHookOutput',
    'PreToolUseDecision',
    'PreToolUseHookOutput',
    'SuggestionDestination',
    'SuggestionRule',
]

from typing import Any, Literal

import pydantic

from shellgate.schemas.base import LenientModel, StrictModel

type SuggestionDestination = Literal['session', 'localSettings', 'userSettings']


# --- Input ---


class HookInput(LenientModel):
    """Hook input for either event.

    The runtime adds fields over time, so unknown ones are ignored.
    """

    session_id: str | None = None
    cwd: str | None = None
    transcript_path: str | None = None
    hook_event_name: str = 'PreToolUse'
    tool_name: str | None = None
    tool_input: dict[str, Any]
    tool_use_id: str | None = None
    permission_mode: str | None = None

    @property
    def is_bash(self) -> bool:
        return self.tool_name in (None, 'Bash')


class BashToolInput(LenientModel):
    command: str
    description: str | None = None


# --- PreToolUse output ---


class SuggestionRule(StrictModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)

    tool_name: Literal['Bash'] = pydantic.Field(default='Bash', alias='toolName')
    rule_content: str | None = pydantic.Field(default=None, alias='ruleContent')


class AddRulesSuggestion(StrictModel):
    """A permission update the user can accept alongside an ask prompt."""

    type: Literal['addRules'] = 'addRules'
    rules: list[SuggestionRule]
    behavior: Literal['allow', 'deny', 'ask'] = 'allow'
    destination: SuggestionDestination


class PreToolUseDecision(StrictModel):
    """Permission decision within a PreToolUse hook output."""

    model_config = pydantic.ConfigDict(populate_by_name=True)

    hook_event_name: Literal['PreToolUse'] = pydantic.Field(default='PreToolUse', alias='hookEventName')
    permission_decision: Literal['allow', 'deny', 'ask'] = pydantic.Field(alias='permissionDecision')
    permission_decision_reason: str | None = pydantic.Field(default=None, alias='permissionDecisionReason')
    suggestions: list[AddRulesSuggestion] | None = None
    additional_context: str | None = pydantic.Field(default=None, alias='additionalContext')


class PreToolUseHookOutput(StrictModel):
    """PreToolUse hook output.

    See: https://code.claude.com/docs/en/hooks#pretooluse
    """

    model_config = pydantic.ConfigDict(populate_by_name=True)

    hook_specific_output: PreToolUseDecision = pydantic.Field(alias='hookSpecificOutput')


# --- PermissionRequest output ---


class PermissionRequestBehavior(StrictModel):
    behavior: Literal['allow', 'deny']
    message: str | None = None


class PermissionRequestDecision(StrictModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)

    hook_event_name: Literal['PermissionRequest'] = pydantic.Field(
        default='PermissionRequest', alias='hookEventName'
    )
    decision: PermissionRequestBehavior


class PermissionRequestHookOutput(StrictModel):
    """PermissionRequest hook output. Only emitted for definite allow or deny.

    See: https://code.claude.com/docs/en/hooks#permissionrequest
    """

    model_config = pydantic.ConfigDict(populate_by_name=True)

    hook_specific_output: PermissionRequestDecision = pydantic.Field(alias='hookSpecificOutput')
