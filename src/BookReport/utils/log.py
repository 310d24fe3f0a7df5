"""BookReport logging utilities.

One project logger carries both diagnostics and the report itself, so the
console shows results and errors in a single stream. Records are prefixed
with a timestamp and a four-letter level.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Final

LOG_FORMAT: Final = "%(asctime)s [%(levelabbr)s] %(message)s"
DATE_FORMAT: Final = "%m-%d %H:%M:%S"

_LEVEL_ABBREV: Final[dict[int, str]] = {
    logging.DEBUG: "DEBG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERRO",
    logging.CRITICAL: "ERRO",
}


class _AbbrevLevelFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 - record is stdlib name
        record.levelabbr = _LEVEL_ABBREV.get(record.levelno, record.levelname[:4])
        return super().format(record)


log = logging.getLogger("BookReport")


def log_file_path(action: str, log_dir: str = "log") -> Path:
    """Return a fresh `<log_dir>/<action>/<action>_<mmddHHMMSS>.log` path."""
    timestamp = datetime.now().strftime("%m%d%H%M%S")
    return Path(log_dir or "log") / action / f"{action}_{timestamp}.log"


def configure_logging(
    *,
    level: str = "INFO",
    action: str | None = None,
    log_to_file: bool = False,
    log_dir: str = "log",
) -> Path | None:
    """Configure the BookReport logger, replacing earlier handlers.

    The console never hides INFO (report lines are INFO) and shows DEBUG when
    `level` asks for it; the log file, when enabled, always records DEBUG.

    Args:
        level: Logging level (e.g., INFO, DEBUG).
        action: CLI action name used to create the log file path.
        log_to_file: Whether to mirror logs to a file.
        log_dir: Base directory for log files.

    Returns:
        Path of the log file, or None when logging only to the console.
    """
    console_level = min(logging.INFO, getattr(logging, (level or "INFO").upper(), logging.INFO))
    formatter = _AbbrevLevelFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(console_level)
    handlers: list[logging.Handler] = [console]

    log_path: Path | None = None
    if log_to_file and action:
        log_path = log_file_path(action, log_dir)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    for handler in log.handlers:
        handler.close()
    log.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        log.addHandler(handler)
    log.setLevel(logging.DEBUG if log_path else console_level)
    log.propagate = False
    return log_path
