from datetime import datetime, timezone
from typing import Callable

import pytest

from nextevt.events import CalendarEvent
from nextevt.scheduler import WakeLoop


@pytest.fixture
def at() -> Callable[..., datetime]:
    """at(9, 30) → 2025-11-03 09:30:00 UTC.

    Every test works on the same fixed day in UTC so nothing depends on the
    host clock or timezone.
    """
    def _at(hour: int, minute: int = 0, second: int = 0) -> datetime:
        return datetime(2025, 11, 3, hour, minute, second, tzinfo=timezone.utc)
    return _at


@pytest.fixture
def make_event(at) -> Callable[..., CalendarEvent]:
    """make_event("x", (9, 0), (9, 30), title=...) with sensible defaults."""
    def _make(identifier: str, start: tuple, end: tuple, **fields) -> CalendarEvent:
        fields.setdefault("title", identifier.upper())
        return CalendarEvent(identifier=identifier, start_time=at(*start), end_time=at(*end), **fields)
    return _make


class FakeSource:
    """Stands in for EventKitSource: returns .events or raises .error."""

    def __init__(self, events=None):
        self.events = list(events or [])
        self.error: Exception | None = None
        self.calls: list[datetime] = []

    def __call__(self, now: datetime) -> list[CalendarEvent]:
        self.calls.append(now)
        if self.error is not None:
            raise self.error
        return list(self.events)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def clock(at) -> FakeClock:
    return FakeClock(at(9, 0))


@pytest.fixture
def loop(clock) -> WakeLoop:
    """A WakeLoop that never sleeps; tests fire timers with run_due()."""
    def _no_sleep(seconds: float) -> None:
        raise AssertionError("tests must not sleep")
    return WakeLoop(clock=clock, sleep=_no_sleep)
