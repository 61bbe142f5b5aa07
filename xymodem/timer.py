"""
Single-shot deadline used to bound every blocking wait.
"""

import time
from typing import Optional


class DeadlineTimer:
    """Countdown that expires a fixed number of seconds after start()."""

    def __init__(self, duration: float):
        self.duration = duration
        self._deadline: Optional[float] = None

    def start(self) -> 'DeadlineTimer':
        """(Re)arm the timer and return it, so it can be created and started in one expression."""
        self._deadline = time.monotonic() + self.duration
        return self

    def expired(self) -> bool:
        if self._deadline is None:
            raise RuntimeError("Timer has not been started")
        return time.monotonic() >= self._deadline

    def remaining(self) -> float:
        """Seconds left before expiry, never negative."""
        if self._deadline is None:
            raise RuntimeError("Timer has not been started")
        return max(0.0, self._deadline - time.monotonic())
