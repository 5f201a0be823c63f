# src/buildtrack/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "buildtrack.log"

# The pure engine logs once per triage/grouping call; that belongs in the file.
_QUIET_APP_LOGGERS = ("buildtrack.tasks.",)


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable while commands print their replies:
    - buildtrack.selection / .remote / .cli: shown (selection outcomes, failed server writes)
    - buildtrack.tasks: WARNING+ only
    - httpx / httpcore: WARNING+ only (request lines stay in the file)
    - py.warnings and other third-party loggers: ERROR+ only
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("buildtrack."):
            if name.startswith(_QUIET_APP_LOGGERS):
                return record.levelno >= logging.WARNING
            return True

        if name.startswith(("httpx", "httpcore")):
            return record.levelno >= logging.WARNING

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/buildtrack",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Route everything to <log_dir>/buildtrack.log and a filtered copy to stderr.

    Replaces existing root handlers, so calling it again (a second main() in the
    same process) does not duplicate output. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    # httpx logs one INFO line per request; httpcore's DEBUG is per header and socket event.
    logging.getLogger("httpcore").setLevel(logging.INFO)
    return log_file
