"""Logging setup shared by the menu bar app and the CLI."""
import logging
from pathlib import Path

LOG_DIR  = Path.home() / "Library" / "Logs" / "nextevt"
LOG_FILE = LOG_DIR / "nextevt.log"
FORMAT   = "%(asctime)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Path | None = LOG_FILE) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=FORMAT,
        handlers=handlers,
        force=True,
    )
