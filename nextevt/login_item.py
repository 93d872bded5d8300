"""Launch at login via a per-user LaunchAgent."""
import logging
import shutil
import subprocess
import sys
from pathlib import Path
from xml.sax.saxutils import escape

logger = logging.getLogger(__name__)

LAUNCH_AGENT_LABEL = "io.nextevt.app"
PLIST_PATH = Path.home() / "Library" / "LaunchAgents" / f"{LAUNCH_AGENT_LABEL}.plist"


def launch_command() -> list[str]:
    """The console script when it is on PATH, else this interpreter running the CLI module."""
    binary = shutil.which("nextevt")
    if binary:
        return [binary, "start"]
    return [sys.executable, "-m", "nextevt.cli", "start"]


def render_plist(program_arguments: list[str]) -> str:
    arguments = "\n".join(f"        <string>{escape(arg)}</string>" for arg in program_arguments)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN"
  "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>Label</key>
    <string>{LAUNCH_AGENT_LABEL}</string>
    <key>ProgramArguments</key>
    <array>
{arguments}
    </array>
    <key>RunAtLoad</key>
    <true/>
    <key>KeepAlive</key>
    <false/>
</dict>
</plist>
"""


def is_enabled(plist_path: Path = PLIST_PATH) -> bool:
    return plist_path.exists()


def enable(program_arguments: list[str], plist_path: Path = PLIST_PATH) -> bool:
    """Write the plist and load it for the current session."""
    try:
        plist_path.parent.mkdir(parents=True, exist_ok=True)
        plist_path.write_text(render_plist(program_arguments))
        # unload first in case an older copy is loaded
        subprocess.run(["launchctl", "unload", str(plist_path)], capture_output=True)
        subprocess.run(["launchctl", "load", str(plist_path)], capture_output=True, check=True)
        return True
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning("Could not enable launch at login: %s", e)
        return False


def disable(plist_path: Path = PLIST_PATH) -> bool:
    if not plist_path.exists():
        return True
    try:
        subprocess.run(["launchctl", "unload", str(plist_path)], capture_output=True)
        plist_path.unlink()
        return True
    except OSError as e:
        logger.warning("Could not disable launch at login: %s", e)
        return False
