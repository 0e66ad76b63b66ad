"""
Clock collaborators for BKM.

Click events are stamped through a clock object so tests and replays can
control time instead of reading the wall clock directly.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    """Anything that can tell the current time."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Clock that only moves when told to.

    Args:
        start: Initial time (defaults to the current UTC time)
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, seconds: float = 1.0) -> datetime:
        self._now = self._now + timedelta(seconds=seconds)
        return self._now
