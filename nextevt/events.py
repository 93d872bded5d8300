"""Calendar events and the filter that decides which ones are eligible.

The data source hands over everything it found for today; only events that
are timed, not cancelled, not declined by the current user and well-formed
survive, sorted by start time.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from nextevt.errors import MalformedEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarEvent:
    identifier: str
    start_time: datetime
    end_time:   datetime
    title:      str  = ""
    is_all_day:   bool = False
    is_cancelled: bool = False
    # An event with no attendee list is one the user organised: attending.
    attendee_declined_by_current_user: bool = False
    location: str = ""
    notes:    str = ""

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def is_happening(self, now: datetime) -> bool:
        return self.start_time <= now <= self.end_time

    def has_started(self, now: datetime, by_at_least: timedelta) -> bool:
        return now - self.start_time >= by_at_least


def validate_event(event: CalendarEvent) -> None:
    """Raise MalformedEvent if the event cannot take part in a refresh cycle."""
    if not event.identifier:
        raise MalformedEvent(event.identifier, "missing identifier")
    if event.end_time < event.start_time:
        raise MalformedEvent(event.identifier, "ends before it starts")


def is_eligible(event: CalendarEvent) -> bool:
    return not (
        event.is_all_day
        or event.is_cancelled
        or event.attendee_declined_by_current_user
    )


def filter_events(raw_events: Iterable[CalendarEvent], now: datetime) -> list[CalendarEvent]:
    """Reduce today's raw events to the eligible ones, ascending by start time.

    Malformed events and repeated identifiers are skipped with a warning
    instead of failing the whole cycle. Events that already ended are dropped.
    """
    eligible: list[CalendarEvent] = []
    seen: set[str] = set()

    for event in raw_events:
        try:
            validate_event(event)
        except MalformedEvent as e:
            logger.warning("Skipping malformed event %s", e)
            continue

        if not is_eligible(event):
            logger.debug("Filtered out %r (%s)", event.title, event.identifier)
            continue
        if event.end_time < now:
            continue

        if event.identifier in seen:
            logger.warning("Skipping duplicate event identifier %r", event.identifier)
            continue
        seen.add(event.identifier)

        eligible.append(event)

    # sorted() is stable: equal start times keep their input order
    return sorted(eligible, key=lambda e: e.start_time)
