"""Persistent user settings stored in ~/.config/nextevt/settings.json."""
import json
import logging
import math
from pathlib import Path

from nextevt.refresher import EngineConfig

logger = logging.getLogger(__name__)

SETTINGS_FILE = Path.home() / ".config" / "nextevt" / "settings.json"

DEFAULTS: dict = {
    "show_event_duration": False,   # "(45 min)" after the start time
    "use_smaller_font": False,      # small control-size menu bar font
    "web_browser": None,            # bundle id for call links, None → default browser
    "handoff_threshold_seconds": 60,
    "coalesce_window_seconds": 60,
    "reminder_lead_seconds": 60,
    "fallback_interval_seconds": 30,
}

MAX_TIMING_SECONDS = 24 * 60 * 60

# settings key → EngineConfig field
TIMING_KEYS = {
    "handoff_threshold_seconds": "handoff_threshold",
    "coalesce_window_seconds":   "coalesce_window",
    "reminder_lead_seconds":     "reminder_lead",
    "fallback_interval_seconds": "fallback_interval",
}


def load(path: Path | None = None) -> dict:
    path = path or SETTINGS_FILE
    if path.exists():
        try:
            return {**DEFAULTS, **json.loads(path.read_text())}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", path, e)
    return dict(DEFAULTS)


def save(settings: dict, path: Path | None = None) -> None:
    path = path or SETTINGS_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings, indent=2))


def get(key: str, path: Path | None = None):
    return load(path).get(key, DEFAULTS.get(key))


def put(key: str, value, path: Path | None = None) -> None:
    s = load(path)
    s[key] = value
    save(s, path)


def check_timing(key: str, value) -> float:
    """Return a timing setting as seconds, or raise ValueError.

    The handoff threshold may be zero; the other intervals must be positive.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"{key} must be a number of seconds, got {value!r}")
    if key == "handoff_threshold_seconds":
        if value < 0:
            raise ValueError(f"{key} must not be negative, got {value}")
    elif value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    if value > MAX_TIMING_SECONDS:
        raise ValueError(f"{key} must be at most {MAX_TIMING_SECONDS} seconds, got {value}")
    return value


def engine_config(settings: dict | None = None) -> EngineConfig:
    """Timing values from the settings; bad ones fall back to the default."""
    s = {**DEFAULTS, **(settings if settings is not None else load())}
    seconds = {}
    for key, field in TIMING_KEYS.items():
        try:
            seconds[field] = check_timing(key, s[key])
        except ValueError as e:
            logger.warning("Using default %s: %s", key, e)
            seconds[field] = DEFAULTS[key]
    return EngineConfig.from_seconds(**seconds)
