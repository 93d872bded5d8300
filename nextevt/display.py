"""Status-bar text and call-link detection for the selected event."""
import re
from datetime import datetime, timedelta
from urllib.parse import urlsplit

from nextevt.events import CalendarEvent

NO_EVENT_TITLE = "・"
MAX_LENGTH     = 40
SUPPORTED_CALL_HOSTS = ("meet.google.com", "zoom.us", "facetime.apple.com")

_URL_RE = re.compile(r'https?://[^\s<>"\']+', re.IGNORECASE)


def display_string(event: CalendarEvent, now: datetime, include_duration: bool = False) -> str:
    """e.g. "In 5 minutes (30 min) – Standup", "14:30 – Review", "Now – 1:1"."""
    if event.start_time - now < timedelta(hours=1):
        components = [relative_phrase(max(event.start_time, now), now)]
    else:
        components = [event.start_time.astimezone(now.tzinfo).strftime("%H:%M")]

    if include_duration and event.duration > timedelta(0):
        components.append(f"({format_duration(event.duration)})")

    components.append("–")
    components.append(event.title)
    return truncated(" ".join(components), MAX_LENGTH)


def relative_phrase(when: datetime, now: datetime) -> str:
    seconds = int((when - now).total_seconds())
    if seconds <= 0:
        return "Now"
    if seconds < 60:
        return "In under a minute"
    minutes = seconds // 60
    if minutes < 60:
        return f"In {minutes} {_plural(minutes, 'minute')}"
    hours = minutes // 60
    return f"In {hours} {_plural(hours, 'hour')}"


def format_duration(duration: timedelta) -> str:
    """Short form without zero units: "45 min", "1 hr 15 min", "30 sec"."""
    total = int(duration.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{hours} hr")
    if minutes:
        parts.append(f"{minutes} min")
    if seconds and not hours:
        parts.append(f"{seconds} sec")
    return " ".join(parts)


def truncated(text: str, length: int) -> str:
    return text if len(text) <= length else text[:length] + "…"


def detect_call_urls(
    event: CalendarEvent, supported_hosts: tuple[str, ...] = SUPPORTED_CALL_HOSTS
) -> list[str]:
    """Meeting links found in the event's location and notes, in that order."""
    urls = []
    for field in (event.location, event.notes):
        if not field:
            continue
        for match in _URL_RE.finditer(field):
            url = match.group(0).rstrip(").,;>")
            host = (urlsplit(url).hostname or "").lower()
            if any(host.endswith(h) for h in supported_hosts) and url not in urls:
                urls.append(url)
    return urls


def _plural(count: int, unit: str) -> str:
    return unit if count == 1 else unit + "s"
