"""Process-edge error handling with handlers chosen by exception type.

A permission hook must always answer. Errors that domain code expects
(unreadable settings, unparseable shell) are handled where they occur; this
boundary catches the rest at the entry point and routes each to the handler
registered for the closest exception type in its MRO::

    boundary = ErrorBoundary(exit_code=0)

    @boundary.handler(pydantic.ValidationError)
    def handle_invalid_input(exc: pydantic.ValidationError) -> None:
        decide(Decision.ASK, f'Invalid hook input: {exc}')

    @boundary.handler(Exception)
    def handle_crash(exc: Exception) -> None:
        decide(Decision.ASK, 'Internal error, requesting manual approval')

    @boundary
    def main() -> None:
        ...

``KeyboardInterrupt``, ``SystemExit`` and other non-``Exception`` errors
always pass through.
"""

from __future__ import annotations

__all__ = [
    'ErrorBoundary',
    'report_traceback',
]

import functools
import sys
import traceback
from collections.abc import Callable
from functools import singledispatch
from typing import Any, TypeVar, cast

_F = TypeVar('_F', bound=Callable[..., object])


class ErrorBoundary:
    """Catch application exceptions raised by the decorated function and dispatch them by type.

    Unregistered types fall back to printing the traceback to stderr.

    Args:
        exit_code: Exit status after an error was handled, or ``None`` to
            suppress the error and return ``None`` from the call.
    """

    def __init__(self, *, exit_code: int | None = 1) -> None:
        self._dispatch = singledispatch(report_traceback)
        self._exit_code = exit_code

    def handler(self, exc_type: type[Exception]) -> Callable[[Callable[..., None]], Callable[..., None]]:
        """Register the handler for ``exc_type`` and its subclasses."""
        return self._dispatch.register(exc_type)

    def __call__(self, func: _F) -> _F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                self._handle(exc)
                return None

        return cast(_F, wrapper)

    def _handle(self, exc: Exception) -> None:
        try:
            self._dispatch(exc)
        except Exception:
            # A failing handler must not escape the boundary.
            try:  # noqa: SIM105
                report_traceback(exc)
            except Exception:
                pass  # stderr itself is gone

        if self._exit_code is not None:
            sys.exit(self._exit_code)


def report_traceback(exc: Exception) -> None:
    """Print ``exc`` with its traceback to stderr."""
    traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
