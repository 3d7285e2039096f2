"""Clock abstraction so scheduling can be driven without the wall clock."""

from datetime import datetime, timedelta, timezone
from typing import Protocol


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the store keeps naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return utcnow()


class ManualClock:
    """Clock that only moves when told to. Used for dry runs and tests."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 1)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, **kwargs)
        return self._now

    def set(self, when: datetime) -> None:
        self._now = when
