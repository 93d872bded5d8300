"""CLI entry point.

  nextevt start            — launch the menu bar app
  nextevt next             — print what the menu bar would show right now
  nextevt watch            — headless refresh loop, prints every update
  nextevt config [KEY [V]] — show or change a setting
  nextevt login-item       — enable / disable launch at login
"""
import json
import signal
import sys

import click

from nextevt import settings as settings_mod
from nextevt.log import setup_logging


def _status_text(event, now, include_duration: bool) -> str:
    from nextevt.display import NO_EVENT_TITLE, display_string
    return display_string(event, now, include_duration) if event else NO_EVENT_TITLE


def _make_source():
    from nextevt.calendar_integration import EventKitSource
    try:
        return EventKitSource()
    except ImportError:
        click.echo("EventKit is not available: nextevt needs macOS with pyobjc installed.", err=True)
        sys.exit(1)


# ── CLI group ─────────────────────────────────────────────────────────────────

@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log refresh cycles and wake-ups.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """NextEvt — your next calendar event in the menu bar."""
    ctx.obj = {"verbose": verbose}


# ── start ─────────────────────────────────────────────────────────────────────

@cli.command()
@click.pass_context
def start(ctx: click.Context):
    """Launch the menu bar app."""
    from nextevt.menu_bar import main
    main(verbose=ctx.obj["verbose"])


# ── next ──────────────────────────────────────────────────────────────────────

@cli.command(name="next")
@click.option("--duration/--no-duration", default=None,
              help="Include the event duration (defaults to the saved setting).")
@click.pass_context
def next_cmd(ctx: click.Context, duration: bool | None):
    """Print the event the menu bar would show right now."""
    from datetime import datetime
    from nextevt.errors import AccessDenied, TransientFetchFailure
    from nextevt.events import filter_events
    from nextevt.selector import select_event

    setup_logging(ctx.obj["verbose"], log_file=None)
    s = settings_mod.load()
    include_duration = s["show_event_duration"] if duration is None else duration
    config = settings_mod.engine_config(s)

    source = _make_source()
    now = datetime.now().astimezone()
    try:
        eligible = filter_events(source(now), now)
    except (AccessDenied, TransientFetchFailure) as e:
        click.echo(click.style(f"✗ {e}", fg="red"), err=True)
        sys.exit(1)

    event = select_event(eligible, now, config.handoff_threshold)
    click.echo(_status_text(event, now, include_duration))


# ── watch ─────────────────────────────────────────────────────────────────────

@cli.command()
@click.pass_context
def watch(ctx: click.Context):
    """Headless refresh loop: print the status text at every refresh."""
    from nextevt.refresher import Refresher
    from nextevt.scheduler import WakeLoop

    setup_logging(ctx.obj["verbose"], log_file=None)
    s = settings_mod.load()
    loop = WakeLoop()

    def on_selection(event):
        now = refresher.refreshed_at
        stamp = now.strftime("%H:%M:%S")
        click.echo(f"  {stamp}  {_status_text(event, now, s['show_event_duration'])}")

    def on_error(exc):
        click.echo(click.style(f"  ✗ {exc}", fg="red"), err=True)
        click.echo("  Grant calendar access and run again.", err=True)
        loop.stop()

    refresher = Refresher(
        fetch=_make_source(),
        timers=loop,
        on_selection_changed=on_selection,
        on_error=on_error,
        config=settings_mod.engine_config(s),
    )

    def _shutdown(sig, frame):
        click.echo("\nStopping…")
        refresher.stop()
        loop.stop()

    signal.signal(signal.SIGINT,  _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    click.echo("Watching today's calendar. Press Ctrl-C to stop.\n")
    loop.call_soon(refresher.refresh)
    loop.run_forever()


# ── config ────────────────────────────────────────────────────────────────────

@cli.command()
@click.argument("key", required=False)
@click.argument("value", required=False)
def config(key: str | None, value: str | None):
    """Show all settings, show one KEY, or set KEY to VALUE (JSON literal)."""
    s = settings_mod.load()
    if key is None:
        for k, v in s.items():
            click.echo(f"  {k:<28} {json.dumps(v)}")
        return

    if key not in settings_mod.DEFAULTS:
        click.echo(f"Unknown setting '{key}'.", err=True)
        sys.exit(1)

    if value is None:
        click.echo(json.dumps(s[key]))
        return

    try:
        parsed = json.loads(value)
    except ValueError:
        parsed = value   # bare strings such as a browser bundle id

    if key in settings_mod.TIMING_KEYS:
        try:
            settings_mod.check_timing(key, parsed)
        except ValueError as e:
            click.echo(click.style(f"✗ {e}", fg="red"), err=True)
            sys.exit(1)
    elif isinstance(settings_mod.DEFAULTS[key], bool) and not isinstance(parsed, bool):
        click.echo(click.style(f"✗ {key} must be true or false, got {value!r}", fg="red"), err=True)
        sys.exit(1)

    settings_mod.put(key, parsed)
    click.echo(click.style(f"✓ {key} = {json.dumps(parsed)}", fg="green"))


# ── login-item ────────────────────────────────────────────────────────────────

@cli.command(name="login-item")
@click.option("--enable/--disable", default=True, help="Add or remove the LaunchAgent.")
def login_item_cmd(enable: bool):
    """Start the menu bar app automatically when you log in."""
    from nextevt import login_item

    if enable:
        ok = login_item.enable(login_item.launch_command())
        msg = "Launch at login enabled." if ok else "Could not set up login item."
    else:
        ok = login_item.disable()
        msg = "Launch at login disabled." if ok else "Could not remove login item."
    click.echo(click.style(msg, fg="green" if ok else "yellow"))
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    cli()
