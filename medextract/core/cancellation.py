"""Cooperative cancellation shared between a run and whoever controls it."""

from __future__ import annotations

import threading

from .exceptions import OperationCancelledError


class CancellationToken:
    """Thread-safe cancellation flag.

    ``cancel()`` may be called from another thread or a signal handler;
    the parse loop polls ``raise_if_cancelled()`` at row boundaries and
    around every external call.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"
