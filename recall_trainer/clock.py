from __future__ import annotations

import datetime as _dt
import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Trial latency is measured against this interface so tests can script time.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class Calendar(Protocol):
    """Source of the local calendar date used for same-day session counting."""

    def today(self) -> str:
        """Return today's date as ``YYYY-MM-DD``."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class SystemCalendar:
    def today(self) -> str:
        return _dt.date.today().isoformat()
