"""Finding installed web browsers and opening call links in one of them."""
import logging
import subprocess

logger = logging.getLogger(__name__)


def find_web_browsers() -> list[tuple[str, str]]:
    """(bundle id, display name) of every app that can open https:// links."""
    try:
        from AppKit import NSWorkspace
        from Foundation import NSBundle, NSURL
    except ImportError:
        return []

    browsers = []
    app_urls = NSWorkspace.sharedWorkspace().URLsForApplicationsToOpenURL_(
        NSURL.URLWithString_("https://")
    ) or []
    for app_url in app_urls:
        bundle = NSBundle.bundleWithURL_(app_url)
        if bundle is None or not bundle.bundleIdentifier():
            continue
        name = _display_name(bundle)
        if name:
            browsers.append((str(bundle.bundleIdentifier()), name))
    return sorted(set(browsers), key=lambda b: b[1].lower())


def _display_name(bundle) -> str | None:
    for info in (bundle.localizedInfoDictionary(), bundle.infoDictionary()):
        if not info:
            continue
        for key in ("CFBundleDisplayName", "CFBundleName"):
            if info.get(key):
                return str(info[key])
    return None


def open_url(url: str, browser: str | None = None) -> None:
    """Open with the given browser bundle id, or the default handler."""
    cmd = ["open", "-b", browser, url] if browser else ["open", url]
    try:
        subprocess.run(cmd, check=True, capture_output=True)
    except subprocess.CalledProcessError:
        if not browser:
            raise
        logger.warning("Could not open %s with %s, using the default browser", url, browser)
        subprocess.run(["open", url], check=True)
