"""Pick the one event the menu bar should show right now.

Rules, applied to the eligible events (ascending by start time):

  1. Among events happening now, take the one that started last: the
     meeting just joined beats a long background block.
  2. If that event has been running for HANDOFF_THRESHOLD or more and the
     next upcoming event starts before it ends (back-to-back booking),
     show the upcoming event instead.
  3. With nothing happening now, show the earliest upcoming event.
"""
from datetime import datetime, timedelta
from typing import Sequence

from nextevt.events import CalendarEvent

HANDOFF_THRESHOLD = timedelta(seconds=60)


def partition(
    eligible: Sequence[CalendarEvent], now: datetime
) -> tuple[list[CalendarEvent], list[CalendarEvent]]:
    """Split into (present, future). Ended events belong to neither."""
    present = [e for e in eligible if e.is_happening(now)]
    future  = [e for e in eligible if e.start_time > now]
    return present, future


def select_event(
    eligible: Sequence[CalendarEvent],
    now: datetime,
    handoff_threshold: timedelta = HANDOFF_THRESHOLD,
) -> CalendarEvent | None:
    present, future = partition(eligible, now)

    current = None
    for event in present:
        # >= so equal start times resolve to the later one in input order
        if current is None or event.start_time >= current.start_time:
            current = event

    if current is None:
        return future[0] if future else None

    if future:
        upcoming = future[0]
        if current.has_started(now, handoff_threshold) and upcoming.start_time < current.end_time:
            return upcoming

    return current
