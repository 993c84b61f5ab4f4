"""End-to-end tests for the shell-gate hook script.

The hook reads one JSON object from stdin and writes at most one to stdout.
"""

from __future__ import annotations

import importlib.util
import io
import json
import sys
from collections.abc import Callable, Generator
from pathlib import Path
from types import ModuleType
from typing import Any

import pytest

from tests.helpers import write_permissions

REPO_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture(scope='session')
def hook_module() -> Generator[ModuleType]:
    """Import shell-gate.py (hyphenated filename requires importlib)."""
    path = REPO_ROOT / 'hooks' / 'shell-gate.py'
    spec = importlib.util.spec_from_file_location('shell_gate', path)
    assert spec is not None and spec.loader is not None
    mod = importlib.util.module_from_spec(spec)
    sys.modules['shell_gate'] = mod
    spec.loader.exec_module(mod)
    yield mod
    sys.modules.pop('shell_gate', None)


type RunHook = Callable[..., dict[str, Any] | None]


@pytest.fixture
def run_hook(
    hook_module: ModuleType,
    project: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> RunHook:
    """Run the hook on ``command``; return the parsed output, or None if it printed nothing."""

    def run(command: str | None = None, *, stdin: str | None = None, **fields: Any) -> dict[str, Any] | None:
        if stdin is None:
            payload = {'tool_name': 'Bash', 'tool_input': {'command': command}, 'cwd': str(project), **fields}
            stdin = json.dumps(payload)
        monkeypatch.setattr(sys, 'stdin', io.StringIO(stdin))
        try:
            hook_module.main()
        except SystemExit as exc:
            assert exc.code == 0
        out = capsys.readouterr().out.strip()
        return json.loads(out) if out else None

    return run


def decision_of(output: dict[str, Any] | None) -> tuple[str, str | None]:
    assert output is not None
    specific = output['hookSpecificOutput']
    assert specific['hookEventName'] == 'PreToolUse'
    return specific['permissionDecision'], specific.get('permissionDecisionReason')


# ---------------------------------------------------------------------------
# TestPreToolUse — decision output
# ---------------------------------------------------------------------------


class TestPreToolUse:
    def test_allow(self, run_hook: RunHook) -> None:
        assert decision_of(run_hook('git status'))[0] == 'allow'

    def test_ask_with_suggestions(self, run_hook: RunHook) -> None:
        output = run_hook('npm install')
        assert decision_of(output) == ('ask', 'npm: Installing packages')
        assert output is not None
        suggestions = output['hookSpecificOutput']['suggestions']
        assert [s['destination'] for s in suggestions] == ['session', 'localSettings', 'userSettings']
        assert suggestions[0]['rules'] == [{'toolName': 'Bash', 'ruleContent': 'npm install:*'}]

    def test_deny(self, run_hook: RunHook) -> None:
        assert decision_of(run_hook('rm -rf /')) == ('deny', "rm '/' blocked (catastrophic data loss)")

    def test_hint_is_additional_context(self, run_hook: RunHook) -> None:
        output = run_hook('git push --force')
        assert output is not None
        assert 'force-with-lease' in output['hookSpecificOutput']['additionalContext']
        assert 'suggestions' not in output['hookSpecificOutput']

    def test_settings_from_hook_cwd(self, run_hook: RunHook, project: Path) -> None:
        write_permissions(project / '.claude' / 'settings.json', deny=['Bash(git log:*)'])
        assert decision_of(run_hook('git log')) == ('deny', 'Matched settings.json deny rule')

    def test_permission_mode_from_input(self, run_hook: RunHook) -> None:
        output = run_hook("sed -i 's/a/b/' app.py", permission_mode='acceptEdits')
        assert decision_of(output) == ('allow', 'Auto-allowed in acceptEdits mode')

    def test_other_tools_produce_no_output(self, run_hook: RunHook) -> None:
        stdin = json.dumps({'tool_name': 'Read', 'tool_input': {'file_path': '/etc/passwd'}})
        assert run_hook(stdin=stdin) is None

    def test_empty_command_produces_no_output(self, run_hook: RunHook) -> None:
        assert run_hook('  ') is None

    def test_unknown_fields_are_ignored(self, run_hook: RunHook) -> None:
        assert decision_of(run_hook('ls', session_id='abc', future_field={'x': 1}))[0] == 'allow'


# ---------------------------------------------------------------------------
# TestPermissionRequest — only definite decisions are answered
# ---------------------------------------------------------------------------


class TestPermissionRequest:
    def run_request(self, run_hook: RunHook, command: str) -> dict[str, Any] | None:
        return run_hook(command, hook_event_name='PermissionRequest')

    def test_allow(self, run_hook: RunHook) -> None:
        assert self.run_request(run_hook, 'git status') == {
            'hookSpecificOutput': {'hookEventName': 'PermissionRequest', 'decision': {'behavior': 'allow'}}
        }

    def test_deny(self, run_hook: RunHook) -> None:
        output = self.run_request(run_hook, 'rm -rf /')
        assert output is not None
        decision = output['hookSpecificOutput']['decision']
        assert decision == {'behavior': 'deny', 'message': "rm '/' blocked (catastrophic data loss)"}

    def test_ask_is_left_to_the_prompt(self, run_hook: RunHook) -> None:
        assert self.run_request(run_hook, 'npm install') is None


# ---------------------------------------------------------------------------
# TestFailClosed — malformed input and internal errors ask
# ---------------------------------------------------------------------------


class TestFailClosed:
    def test_invalid_json(self, run_hook: RunHook) -> None:
        decision, reason = decision_of(run_hook(stdin='{not json'))
        assert decision == 'ask'
        assert reason is not None and reason.startswith('Invalid hook input: ')

    def test_missing_tool_input(self, run_hook: RunHook) -> None:
        decision, reason = decision_of(run_hook(stdin=json.dumps({'tool_name': 'Bash'})))
        assert decision == 'ask'
        assert reason is not None and reason.startswith('Invalid hook input: ')

    def test_missing_command(self, run_hook: RunHook) -> None:
        stdin = json.dumps({'tool_name': 'Bash', 'tool_input': {'description': 'no command'}})
        assert decision_of(run_hook(stdin=stdin))[0] == 'ask'

    def test_internal_error(
        self,
        run_hook: RunHook,
        hook_module: ModuleType,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        def explode(*args: object) -> None:
            raise RuntimeError('boom')

        monkeypatch.setattr(hook_module, 'evaluate_with_suggestions', explode)
        stdin = json.dumps({'tool_name': 'Bash', 'tool_input': {'command': 'ls'}})
        monkeypatch.setattr(sys, 'stdin', io.StringIO(stdin))
        with pytest.raises(SystemExit) as excinfo:
            hook_module.main()
        assert excinfo.value.code == 0

        captured = capsys.readouterr()
        output = json.loads(captured.out)
        assert decision_of(output) == ('ask', 'Internal error, requesting manual approval')
        assert "shell-gate hook error: RuntimeError('boom')" in captured.err

    def test_unwrapped_main_propagates(
        self, hook_module: ModuleType, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(sys, 'stdin', io.StringIO('{not json'))
        with pytest.raises(ValueError):
            hook_module.main.__wrapped__()
