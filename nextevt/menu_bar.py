"""macOS menu bar app (rumps).

The status item shows the selected event ("In 5 minutes – Standup") or
"・" when there is nothing left today. The menu:

  Join call          — only while the event has a Meet/Zoom/FaceTime link
  Event duration     — toggle "(30 min)" in the title
  Use a smaller font — small control-size menu bar font
  Join calls in ▸    — preferred browser for call links
  Launch at login
  Quit
"""
import logging
from datetime import datetime
from typing import Callable

import rumps

from nextevt import browsers, login_item, settings
from nextevt.calendar_integration import EventKitSource, EventStoreWatcher
from nextevt.display import NO_EVENT_TITLE, detect_call_urls, display_string
from nextevt.events import CalendarEvent
from nextevt.errors import AccessDenied
from nextevt.log import setup_logging
from nextevt.refresher import Refresher

logger = logging.getLogger(__name__)

_JOIN_CALL      = "Join call"
_EVENT_DURATION = "Event duration"
_SMALLER_FONT   = "Use a smaller font"
_JOIN_CALLS_IN  = "Join calls in"
_LAUNCH_AT_LOGIN = "Launch at login"


class _OneShotTimer:
    """A non-repeating NSTimer on the main run loop, in common modes so it
    still fires while the menu is open."""

    def __init__(self, at: datetime, callback: Callable[[], None]):
        from Foundation import NSDate, NSRunLoop, NSRunLoopCommonModes, NSTimer

        self._callback = callback
        self._nstimer  = NSTimer.alloc().initWithFireDate_interval_repeats_block_(
            NSDate.dateWithTimeIntervalSince1970_(at.timestamp()), 0, False, self._fire
        )
        NSRunLoop.mainRunLoop().addTimer_forMode_(self._nstimer, NSRunLoopCommonModes)

    def _fire(self, _timer) -> None:
        self._nstimer = None
        self._callback()

    def cancel(self) -> None:
        if self._nstimer is not None:
            self._nstimer.invalidate()
            self._nstimer = None


class RunLoopTimers:
    def schedule(self, at: datetime, callback: Callable[[], None]) -> _OneShotTimer:
        return _OneShotTimer(at, callback)


class NextEvtApp(rumps.App):
    def __init__(self):
        super().__init__("NextEvt", title=NO_EVENT_TITLE, quit_button=None)

        self._join_item     = rumps.MenuItem(_JOIN_CALL, callback=self.join_call)
        self._duration_item = rumps.MenuItem(_EVENT_DURATION, callback=self.toggle_duration)
        self._font_item     = rumps.MenuItem(_SMALLER_FONT, callback=self.toggle_smaller_font)
        self._browser_item  = rumps.MenuItem(_JOIN_CALLS_IN)
        self._login_item    = rumps.MenuItem(_LAUNCH_AT_LOGIN, callback=self.toggle_login_item)

        self.menu = [
            self._duration_item,
            self._font_item,
            None,
            self._browser_item,
            self._login_item,
            None,
            rumps.MenuItem("Quit", callback=self.quit_app),
        ]
        self._call_url: str | None = None
        self._join_shown = False

        self._duration_item.state = settings.get("show_event_duration")
        self._font_item.state     = settings.get("use_smaller_font")
        self._login_item.state    = login_item.is_enabled()
        self._build_browser_menu()

        self._timers  = RunLoopTimers()
        self._source  = EventKitSource()
        self._refresher = Refresher(
            fetch=self._source,
            timers=self._timers,
            on_selection_changed=self._update,
            on_error=self._show_error,
            config=settings.engine_config(),
        )
        self._watcher = EventStoreWatcher(self._source, on_change=self._refresher.refresh)

    def start(self) -> None:
        """Watch the calendar and refresh once the run loop is up, when the
        status item exists."""
        self._watcher.start()
        self._timers.schedule(datetime.now().astimezone(), self._refresher.refresh)

    # ── refresher callbacks ───────────────────────────────────────────────────

    def _update(self, event: CalendarEvent | None) -> None:
        self._apply_font()
        if event is None:
            self.title = NO_EVENT_TITLE
            self._set_call_url(None)
            return

        now = self._refresher.refreshed_at
        self.title = display_string(event, now, include_duration=bool(settings.get("show_event_duration")))
        urls = detect_call_urls(event)
        self._set_call_url(urls[0] if urls else None)

    def _show_error(self, error: Exception) -> None:
        self._apply_font()
        self.title = NO_EVENT_TITLE
        self._set_call_url(None)
        if isinstance(error, AccessDenied):
            rumps.alert(
                title="NextEvt",
                message=f"{error}. Allow NextEvt in System Settings → Privacy & Security → Calendars.",
            )
        else:
            rumps.alert(title="NextEvt", message=str(error))

    # ── menu actions ──────────────────────────────────────────────────────────

    def join_call(self, _):
        if self._call_url:
            browsers.open_url(self._call_url, settings.get("web_browser"))

    def toggle_duration(self, sender):
        value = not settings.get("show_event_duration")
        settings.put("show_event_duration", value)
        sender.state = value
        self._refresher.refresh()

    def toggle_smaller_font(self, sender):
        value = not settings.get("use_smaller_font")
        settings.put("use_smaller_font", value)
        sender.state = value
        self._refresher.refresh()

    def toggle_login_item(self, sender):
        if login_item.is_enabled():
            ok = login_item.disable()
        else:
            ok = login_item.enable(login_item.launch_command())
        if not ok:
            rumps.notification("NextEvt", "Launch at login", "Could not update the login item.")
        sender.state = login_item.is_enabled()

    def choose_browser(self, sender):
        current = settings.get("web_browser")
        chosen  = None if current == sender.bundle_id else sender.bundle_id
        settings.put("web_browser", chosen)
        for item in self._browser_item.values():
            item.state = item.bundle_id == chosen

    def quit_app(self, _):
        self._watcher.stop()
        self._refresher.stop()
        rumps.quit_application()

    # ── menu helpers ──────────────────────────────────────────────────────────

    def _build_browser_menu(self) -> None:
        chosen = settings.get("web_browser")
        for bundle_id, name in browsers.find_web_browsers():
            item = rumps.MenuItem(name, callback=self.choose_browser)
            item.bundle_id = bundle_id
            item.state = bundle_id == chosen
            self._browser_item.add(item)

    def _apply_font(self) -> None:
        nsapp = getattr(self, "_nsapp", None)
        if nsapp is None:
            return
        from AppKit import NSControlSizeRegular, NSControlSizeSmall, NSFont

        size = NSControlSizeSmall if settings.get("use_smaller_font") else NSControlSizeRegular
        font = NSFont.menuBarFontOfSize_(NSFont.systemFontSizeForControlSize_(size))
        nsapp.nsstatusitem.button().setFont_(font)

    def _set_call_url(self, url: str | None) -> None:
        self._call_url = url
        if url and not self._join_shown:
            self.menu.insert_before(_EVENT_DURATION, self._join_item)
            self._join_shown = True
        elif not url and self._join_shown:
            del self.menu[_JOIN_CALL]
            self._join_shown = False


def main(verbose: bool = False):
    import AppKit
    setup_logging(verbose)
    app = NextEvtApp()
    AppKit.NSApplication.sharedApplication().setActivationPolicy_(
        AppKit.NSApplicationActivationPolicyAccessory
    )
    app.start()
    app.run()
