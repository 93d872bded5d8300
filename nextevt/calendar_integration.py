"""macOS Calendar access through EventKit (PyObjC).

Reads today's events from every calendar, from now until the end of the
local day, and turns them into CalendarEvent snapshots. Permission is
requested on first use; a denied or restricted status raises AccessDenied.
Anything else that goes wrong while reading is a TransientFetchFailure.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from nextevt.errors import AccessDenied, TransientFetchFailure
from nextevt.events import CalendarEvent

logger = logging.getLogger(__name__)

# EKAuthorizationStatus
_NOT_DETERMINED = 0
_RESTRICTED     = 1
_DENIED         = 2
_AUTHORIZED     = 3   # EKAuthorizationStatusFullAccess on macOS 14+
_WRITE_ONLY     = 4

_EVENT_STATUS_CANCELED      = 3   # EKEventStatusCanceled
_PARTICIPANT_STATUS_DECLINED = 3  # EKParticipantStatusDeclined


def end_of_day(now: datetime) -> datetime:
    """One second before the next local midnight."""
    midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(seconds=1)


def _to_datetime(nsdate, tz) -> datetime:
    return datetime.fromtimestamp(nsdate.timeIntervalSince1970(), tz)


def _declined_by_current_user(ek_event) -> bool:
    attendees = ek_event.attendees()
    if not attendees:
        return False
    return any(
        p.isCurrentUser() and p.participantStatus() == _PARTICIPANT_STATUS_DECLINED
        for p in attendees
    )


def occurrence_identifier(series_identifier: str, start: datetime) -> str:
    """EventKit shares eventIdentifier across the occurrences of a recurring
    event; the start instant tells them apart."""
    return f"{series_identifier}@{int(start.timestamp())}"


def event_from_ekevent(ek_event, tz) -> CalendarEvent:
    """Snapshot an EKEvent. Missing dates or identifiers come through as an
    empty identifier so the filter drops the event as malformed."""
    series = ek_event.eventIdentifier() or ek_event.calendarItemIdentifier() or ""
    start, end = ek_event.startDate(), ek_event.endDate()
    if start is None or end is None:
        now = datetime.now(tz)
        return CalendarEvent(identifier="", start_time=now, end_time=now,
                             title=ek_event.title() or "")

    start_time = _to_datetime(start, tz)
    return CalendarEvent(
        identifier=occurrence_identifier(str(series), start_time) if series else "",
        start_time=start_time,
        end_time=_to_datetime(end, tz),
        title=str(ek_event.title() or ""),
        is_all_day=bool(ek_event.isAllDay()),
        is_cancelled=ek_event.status() == _EVENT_STATUS_CANCELED,
        attendee_declined_by_current_user=_declined_by_current_user(ek_event),
        location=str(ek_event.location() or ""),
        notes=str(ek_event.notes() or ""),
    )


class EventKitSource:
    """Callable data source: source(now) -> list[CalendarEvent]."""

    def __init__(self):
        from EventKit import EKEventStore
        self.store = EKEventStore.alloc().init()

    def __call__(self, now: datetime) -> list[CalendarEvent]:
        self.ensure_access()
        try:
            from Foundation import NSDate
            predicate = self.store.predicateForEventsWithStartDate_endDate_calendars_(
                NSDate.dateWithTimeIntervalSince1970_(now.timestamp()),
                NSDate.dateWithTimeIntervalSince1970_(end_of_day(now).timestamp()),
                None,
            )
            ek_events = self.store.eventsMatchingPredicate_(predicate) or []
            return [event_from_ekevent(e, now.tzinfo) for e in ek_events]
        except Exception as e:
            raise TransientFetchFailure(f"Could not read calendar events: {e}") from e

    # ── permission ────────────────────────────────────────────────────────────

    def authorization_status(self) -> int:
        from EventKit import EKEventStore, EKEntityTypeEvent
        return EKEventStore.authorizationStatusForEntityType_(EKEntityTypeEvent)

    def ensure_access(self) -> None:
        status = self.authorization_status()
        if status == _AUTHORIZED:
            return
        if status == _NOT_DETERMINED:
            if self.request_access():
                return
        raise AccessDenied()

    def request_access(self) -> bool:
        """Show the system prompt and wait for the user's answer."""
        from EventKit import EKEntityTypeEvent

        done   = threading.Event()
        result = {"granted": False, "error": None}

        def _completion(granted, error):
            result["granted"] = bool(granted)
            result["error"]   = error
            done.set()

        if hasattr(self.store, "requestFullAccessToEventsWithCompletion_"):
            self.store.requestFullAccessToEventsWithCompletion_(_completion)
        else:
            self.store.requestAccessToEntityType_completion_(EKEntityTypeEvent, _completion)
        done.wait()

        if result["error"] is not None:
            logger.warning("Calendar access request failed: %s", result["error"])
        return result["granted"]


class EventStoreWatcher:
    """Calls on_change on the main queue whenever the calendar store changes.

    That includes permission being granted again, which is the only way a
    refresher stopped by AccessDenied is restarted automatically.
    """

    def __init__(self, source: EventKitSource, on_change: Callable[[], None]):
        self._source    = source
        self._on_change = on_change
        self._token     = None

    def start(self) -> None:
        if self._token is not None:
            return
        from EventKit import EKEventStoreChangedNotification
        from Foundation import NSNotificationCenter, NSOperationQueue

        self._token = NSNotificationCenter.defaultCenter().addObserverForName_object_queue_usingBlock_(
            EKEventStoreChangedNotification,
            self._source.store,
            NSOperationQueue.mainQueue(),
            self._changed,
        )

    def stop(self) -> None:
        if self._token is None:
            return
        from Foundation import NSNotificationCenter
        NSNotificationCenter.defaultCenter().removeObserver_(self._token)
        self._token = None

    def _changed(self, _notification) -> None:
        logger.debug("Calendar store changed")
        self._on_change()
