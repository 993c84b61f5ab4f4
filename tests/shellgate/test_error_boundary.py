"""Tests for the type-dispatched error boundary."""

from __future__ import annotations

import json

import pytest
from shellgate.error_boundary import ErrorBoundary


class TestDispatch:
    def test_closest_handler_wins(self) -> None:
        seen: list[str] = []
        boundary = ErrorBoundary(exit_code=None)

        @boundary.handler(ValueError)
        def on_value(exc: ValueError) -> None:
            seen.append('value')

        @boundary.handler(Exception)
        def on_any(exc: Exception) -> None:
            seen.append('any')

        @boundary
        def run(fail: Exception | None) -> None:
            if fail is None:
                json.loads('{')  # JSONDecodeError is a ValueError
            else:
                raise fail

        run(None)
        run(KeyError('x'))

        assert seen == ['value', 'any']

    def test_stacked_registration(self) -> None:
        seen: list[type[Exception]] = []
        boundary = ErrorBoundary(exit_code=None)

        @boundary.handler(KeyError)
        @boundary.handler(IndexError)
        def on_lookup(exc: Exception) -> None:
            seen.append(type(exc))

        @boundary
        def fail(exc: Exception) -> None:
            raise exc

        fail(KeyError('k'))
        fail(IndexError('i'))

        assert seen == [KeyError, IndexError]

    def test_default_reports_traceback(self, capsys: pytest.CaptureFixture[str]) -> None:
        @ErrorBoundary(exit_code=None)
        def fail() -> None:
            raise RuntimeError('boom')

        fail()
        err = capsys.readouterr().err
        assert 'Traceback' in err
        assert 'RuntimeError: boom' in err


class TestExit:
    def test_exits_with_code_after_handling(self) -> None:
        boundary = ErrorBoundary(exit_code=0)

        @boundary.handler(Exception)
        def ignore(exc: Exception) -> None:
            pass

        @boundary
        def fail() -> None:
            raise RuntimeError('boom')

        with pytest.raises(SystemExit) as excinfo:
            fail()
        assert excinfo.value.code == 0

    def test_base_exceptions_pass_through(self) -> None:
        @ErrorBoundary(exit_code=None)
        def interrupted() -> None:
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            interrupted()

    def test_failing_handler_falls_back_to_traceback(self, capsys: pytest.CaptureFixture[str]) -> None:
        boundary = ErrorBoundary(exit_code=None)

        @boundary.handler(Exception)
        def broken(exc: Exception) -> None:
            raise OSError('stdout closed')

        @boundary
        def fail() -> None:
            raise RuntimeError('original')

        fail()
        assert 'RuntimeError: original' in capsys.readouterr().err


class TestDecorator:
    def test_passes_return_value(self) -> None:
        boundary = ErrorBoundary(exit_code=None)

        @boundary
        def add(a: int, b: int) -> int:
            return a + b

        assert add(1, 2) == 3
        assert add.__wrapped__(2, 3) == 5  # type: ignore[attr-defined]

    def test_handled_error_returns_none(self) -> None:
        seen: list[Exception] = []
        boundary = ErrorBoundary(exit_code=None)
        boundary.handler(Exception)(seen.append)

        @boundary
        def fail() -> None:
            raise ValueError('bad')

        assert fail() is None
        assert len(seen) == 1
