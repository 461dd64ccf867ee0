"""Cooperative cancellation shared by a run and its tasks.

The flow runner only checks the context between tasks. A long running task
body should poll ``tf.context.cancelled`` (or block on ``wait``) itself.
"""

from __future__ import annotations

import threading

DEFAULT_CANCEL_REASON = "context canceled"


class Cancelled(Exception):
    """The error reported once a :class:`Context` has been cancelled."""

    def __init__(self, reason: str = DEFAULT_CANCEL_REASON) -> None:
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        return self.reason


class Context:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._error: Cancelled | None = None

    @classmethod
    def background(cls) -> Context:
        """A context nobody holds a reference to cancel."""
        return cls()

    def cancel(self, reason: str = DEFAULT_CANCEL_REASON) -> None:
        """Cancel the context. Only the first reason is kept."""
        with self._lock:
            if self._error is None:
                self._error = Cancelled(reason)
        self._done.set()

    @property
    def cancelled(self) -> bool:
        return self._done.is_set()

    def err(self) -> Cancelled | None:
        with self._lock:
            return self._error

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses. Returns ``cancelled``."""
        return self._done.wait(timeout)
