"""The refresh cycle: fetch → filter → select → notify → reconcile.

A Refresher is driven from a single thread. Timer wake-ups and external
signals (calendar changed, a preference toggled) all call refresh(); a call
that arrives while a cycle is running is folded into one follow-up cycle
instead of nesting.

Errors from the fetch:
  AccessDenied           — reported once through on_error, every timer is
                           cancelled and nothing is re-armed; the next
                           refresh() has to come from outside
  TransientFetchFailure  — logged, last selection kept, retry after
                           the fallback interval
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from nextevt.errors import AccessDenied, TransientFetchFailure
from nextevt.events import CalendarEvent, filter_events
from nextevt.scheduler import (
    COALESCE_WINDOW,
    FALLBACK_INTERVAL,
    REMINDER_LEAD,
    RefreshScheduler,
    TimerFacility,
)
from nextevt.selector import HANDOFF_THRESHOLD, select_event

logger = logging.getLogger(__name__)

FetchEvents = Callable[[datetime], list[CalendarEvent]]


@dataclass(frozen=True)
class EngineConfig:
    handoff_threshold: timedelta = HANDOFF_THRESHOLD
    coalesce_window:   timedelta = COALESCE_WINDOW
    reminder_lead:     timedelta = REMINDER_LEAD
    fallback_interval: timedelta = FALLBACK_INTERVAL

    def __post_init__(self):
        if self.handoff_threshold < timedelta(0):
            raise ValueError(f"handoff_threshold must not be negative, got {self.handoff_threshold}")
        # a zero or negative interval arms wake-ups at or before now and spins the loop
        for name in ("coalesce_window", "reminder_lead", "fallback_interval"):
            value = getattr(self, name)
            if value <= timedelta(0):
                raise ValueError(f"{name} must be positive, got {value}")

    @classmethod
    def from_seconds(cls, **seconds: float) -> "EngineConfig":
        return cls(**{name: timedelta(seconds=value) for name, value in seconds.items()})


def _local_now() -> datetime:
    return datetime.now().astimezone()


class Refresher:
    def __init__(
        self,
        fetch: FetchEvents,
        timers: TimerFacility,
        on_selection_changed: Callable[[CalendarEvent | None], None],
        on_error: Callable[[Exception], None] | None = None,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] = _local_now,
    ):
        self.config = config or EngineConfig()
        self._fetch = fetch
        self._clock = clock
        self._on_selection_changed = on_selection_changed
        self._on_error = on_error or (lambda exc: None)

        self.scheduler = RefreshScheduler(
            timers,
            on_wake=self.refresh,
            coalesce_window=self.config.coalesce_window,
            reminder_lead=self.config.reminder_lead,
            fallback_interval=self.config.fallback_interval,
        )

        self.selection: CalendarEvent | None = None
        self.eligible: list[CalendarEvent] = []
        self.armed: set[datetime] = set()
        self.refreshed_at: datetime | None = None
        self.cycles = 0

        self._running         = False
        self._again           = False
        self._denied_reported = False

    def refresh(self) -> None:
        if self._running:
            self._again = True
            return

        self._running = True
        try:
            self._again = True
            while self._again:
                self._again = False
                self._cycle()
        finally:
            self._running = False

    def stop(self) -> None:
        """Cancel every pending wake-up (app quitting)."""
        self.scheduler.cancel_all()
        self.armed = set()

    # ── one cycle ─────────────────────────────────────────────────────────────

    def _cycle(self) -> None:
        now = self._clock()
        self.cycles += 1

        try:
            raw = self._fetch(now)
        except AccessDenied as e:
            logger.warning("Calendar access denied: %s", e)
            self.scheduler.cancel_all()
            self.armed = set()
            if not self._denied_reported:
                self._denied_reported = True
                self._on_error(e)
            return
        except TransientFetchFailure as e:
            logger.warning("Calendar fetch failed, retrying in %s: %s",
                           self.config.fallback_interval, e)
            self.scheduler.cancel_all()
            self.armed = {self.scheduler.arm_fallback(now)}
            return

        self._denied_reported = False

        self.refreshed_at = now
        self.eligible  = filter_events(raw, now)
        self.selection = select_event(self.eligible, now, self.config.handoff_threshold)
        logger.debug(
            "Refresh at %s: %d raw, %d eligible, showing %r",
            now.isoformat(timespec="seconds"), len(raw), len(self.eligible),
            self.selection.title if self.selection else None,
        )

        try:
            self._on_selection_changed(self.selection)
        finally:
            self.armed = self.scheduler.reconcile(self.eligible, now)
