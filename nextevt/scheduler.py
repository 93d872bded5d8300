"""Wake-up scheduling for the refresh cycle.

Nothing here polls on a fixed period. Each eligible event gets its own
one-shot timers at the instants where the selection or its text can change:

  start     — the event starts (coarsened to COALESCE_WINDOW while far away,
              so events inserted earlier in the day are noticed in time)
  reminder  — REMINDER_LEAD before the start, so "In 2 minutes" never
              outlives the start
  end       — one second after the event ends

Timers live in a TimerRegistry keyed by event identifier. Every refresh
prunes the identifiers that disappeared and re-arms the rest, so a removed
event can never fire a stale refresh and nothing is armed twice.

Everything runs on one thread: the menu bar's run loop, or WakeLoop below
for headless use and tests.
"""
import heapq
import itertools
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Iterable, Protocol

from nextevt.events import CalendarEvent

logger = logging.getLogger(__name__)

# ── Timing policy ─────────────────────────────────────────────────────────────
COALESCE_WINDOW   = timedelta(seconds=60)  # farther than this → wake in 60s, not at start
REMINDER_LEAD     = timedelta(seconds=60)  # pre-start refresh
END_GRACE         = timedelta(seconds=1)   # re-evaluate just after the end
FALLBACK_INTERVAL = timedelta(seconds=30)  # nothing eligible, or the fetch failed

START    = "start"
REMINDER = "reminder"
END      = "end"


class WakeHandle(Protocol):
    def cancel(self) -> None: ...


class TimerFacility(Protocol):
    def schedule(self, at: datetime, callback: Callable[[], None]) -> WakeHandle: ...


# ── Registry ──────────────────────────────────────────────────────────────────

class TimerRegistry:
    """Armed timers per event identifier, one per boundary.

    arm/cancel/prune/discard are the only mutators. Replacing or dropping a
    handle always cancels it first, except discard(), which is for handles
    that just fired.
    """

    def __init__(self):
        self._entries: dict[str, dict[str, WakeHandle]] = {}

    def arm(self, identifier: str, boundary: str, handle: WakeHandle) -> None:
        timers = self._entries.setdefault(identifier, {})
        previous = timers.get(boundary)
        if previous is not None and previous is not handle:
            previous.cancel()
        timers[boundary] = handle

    def cancel(self, identifier: str) -> int:
        timers = self._entries.pop(identifier, {})
        for handle in timers.values():
            handle.cancel()
        return len(timers)

    def prune(self, live: Iterable[str]) -> list[str]:
        """Cancel every identifier not in `live`; return the pruned ones."""
        keep = set(live)
        stale = [ident for ident in self._entries if ident not in keep]
        for ident in stale:
            self.cancel(ident)
        return stale

    def discard(self, identifier: str, boundary: str, handle: WakeHandle) -> None:
        timers = self._entries.get(identifier)
        if not timers or timers.get(boundary) is not handle:
            return
        del timers[boundary]
        if not timers:
            del self._entries[identifier]

    def cancel_all(self) -> None:
        for ident in list(self._entries):
            self.cancel(ident)

    def boundaries(self, identifier: str) -> set[str]:
        return set(self._entries.get(identifier, ()))

    def identifiers(self) -> set[str]:
        return set(self._entries)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return sum(len(timers) for timers in self._entries.values())


# ── Scheduler ─────────────────────────────────────────────────────────────────

class RefreshScheduler:
    """Keeps the registry in step with the latest eligible events.

    on_wake is called (with no arguments) whenever an armed instant is
    reached; the caller runs a full refresh cycle from there.
    """

    def __init__(
        self,
        timers: TimerFacility,
        on_wake: Callable[[], None],
        coalesce_window:   timedelta = COALESCE_WINDOW,
        reminder_lead:     timedelta = REMINDER_LEAD,
        fallback_interval: timedelta = FALLBACK_INTERVAL,
    ):
        self._timers   = timers
        self._on_wake  = on_wake
        self.coalesce_window   = coalesce_window
        self.reminder_lead     = reminder_lead
        self.fallback_interval = fallback_interval

        self.registry = TimerRegistry()
        self._fallback: WakeHandle | None = None
        self._fallback_at: datetime | None = None

    def reconcile(self, eligible: Iterable[CalendarEvent], now: datetime) -> set[datetime]:
        """Prune vanished events, re-arm the others; return the instants armed."""
        eligible = list(eligible)
        self._cancel_fallback()

        pruned = self.registry.prune(e.identifier for e in eligible)
        if pruned:
            logger.debug("Pruned timers for %d vanished event(s): %s", len(pruned), pruned)

        armed: set[datetime] = set()
        for event in eligible:
            self.registry.cancel(event.identifier)
            for boundary, at in self.wake_instants(event, now).items():
                self._arm(event.identifier, boundary, at)
                armed.add(at)

        if not eligible:
            armed.add(self.arm_fallback(now))

        logger.debug(
            "Armed %d wake-up(s) for %d event(s), next at %s",
            len(armed), len(eligible), min(armed) if armed else None,
        )
        return armed

    def wake_instants(self, event: CalendarEvent, now: datetime) -> dict[str, datetime]:
        """The instants at which `event` needs a refresh, by boundary."""
        instants: dict[str, datetime] = {}

        if event.start_time > now:
            if event.start_time - now > self.coalesce_window:
                instants[START] = now + self.coalesce_window
            else:
                instants[START] = event.start_time

            reminder_at = event.start_time - self.reminder_lead
            if reminder_at > now:
                instants[REMINDER] = reminder_at

        instants[END] = event.end_time + END_GRACE
        return instants

    def arm_fallback(self, now: datetime) -> datetime:
        """Single retry wake-up, independent of any event."""
        self._cancel_fallback()
        at = now + self.fallback_interval

        def fire():
            self._fallback    = None
            self._fallback_at = None
            self._on_wake()

        self._fallback    = self._timers.schedule(at, fire)
        self._fallback_at = at
        return at

    @property
    def fallback_at(self) -> datetime | None:
        return self._fallback_at

    def cancel_all(self) -> None:
        self.registry.cancel_all()
        self._cancel_fallback()

    # ── helpers ───────────────────────────────────────────────────────────────

    def _arm(self, identifier: str, boundary: str, at: datetime) -> None:
        def fire():
            self.registry.discard(identifier, boundary, handle)
            logger.debug("Wake-up: %s boundary of %s", boundary, identifier)
            self._on_wake()

        handle = self._timers.schedule(at, fire)
        self.registry.arm(identifier, boundary, handle)

    def _cancel_fallback(self) -> None:
        if self._fallback is not None:
            self._fallback.cancel()
        self._fallback    = None
        self._fallback_at = None


# ── Single-threaded timer loop ────────────────────────────────────────────────

class _Wake:
    __slots__ = ("at", "callback", "cancelled")

    def __init__(self, at: datetime, callback: Callable[[], None]):
        self.at        = at
        self.callback  = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


def _local_now() -> datetime:
    return datetime.now().astimezone()


class WakeLoop:
    """A heap of one-shot timers fired from a single thread.

    run_due() fires everything due at a given instant, which is what tests
    drive directly. run_forever() sleeps until the next due timer and is
    what the headless CLI uses. A cancelled timer is skipped when its turn
    comes, even if it was cancelled by a callback fired in the same batch.
    """

    MAX_SLEEP = 1.0  # seconds; keeps Ctrl-C and clock changes responsive

    def __init__(
        self,
        clock: Callable[[], datetime] = _local_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock   = clock
        self._sleep   = sleep
        self._heap: list[tuple[datetime, int, _Wake]] = []
        self._counter = itertools.count()
        self._running = False

    def schedule(self, at: datetime, callback: Callable[[], None]) -> _Wake:
        wake = _Wake(at, callback)
        heapq.heappush(self._heap, (at, next(self._counter), wake))
        return wake

    def call_soon(self, callback: Callable[[], None]) -> _Wake:
        """Inject an external signal (e.g. calendar changed) into the loop."""
        return self.schedule(self._clock(), callback)

    def next_due(self) -> datetime | None:
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)
        return self._heap[0][0] if self._heap else None

    def pending(self) -> list[datetime]:
        return sorted(at for at, _, wake in self._heap if not wake.cancelled)

    def run_due(self, now: datetime | None = None) -> int:
        """Fire every live timer due at or before `now`; return how many fired."""
        now = now if now is not None else self._clock()
        fired = 0
        while self._heap and self._heap[0][0] <= now:
            _, _, wake = heapq.heappop(self._heap)
            if wake.cancelled:
                continue
            wake.cancelled = True
            wake.callback()
            fired += 1
        return fired

    def run_forever(self) -> None:
        self._running = True
        while self._running:
            due = self.next_due()
            now = self._clock()
            if due is not None and due <= now:
                self.run_due(now)
                continue
            delay = self.MAX_SLEEP
            if due is not None:
                delay = min(delay, (due - now).total_seconds())
            self._sleep(delay)

    def stop(self) -> None:
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running
