"""Time source used by refresh workers.

Workers never call :func:`time.sleep` directly. Every wait goes through a
:class:`Clock` so that it can be interrupted by the engine's stop event and
so that tests can replace real time with a fake.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Abstract wall-clock and interruptible wait."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current UTC time."""
        ...

    @abstractmethod
    def wait(self, seconds: float, stop: threading.Event) -> bool:
        """Wait for *seconds* unless *stop* is set first.

        Returns:
            ``True`` if the full duration elapsed, ``False`` if the wait was
            cut short because *stop* was set.
        """
        ...


class SystemClock(Clock):
    """Real time, with waits implemented on :meth:`threading.Event.wait`."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def wait(self, seconds: float, stop: threading.Event) -> bool:
        if seconds <= 0:
            return not stop.is_set()
        return not stop.wait(seconds)
