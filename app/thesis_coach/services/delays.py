"""Cancellable pauses used to pace coach replies and analysis results."""
from __future__ import annotations

import threading


class ScheduledDelay:
    """
    A wait that can be cut short from another thread.

    ``wait`` returns True when the full delay elapsed and False when the delay
    was cancelled. Once cancelled, every later wait returns False immediately.
    A non-positive delay never blocks.
    """

    def __init__(self, seconds: float = 0.0):
        self.seconds = max(0.0, float(seconds or 0.0))
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def wait(self) -> bool:
        if self._cancelled.is_set():
            return False
        if self.seconds <= 0:
            return True
        return not self._cancelled.wait(self.seconds)

    def cancel(self) -> None:
        self._cancelled.set()
