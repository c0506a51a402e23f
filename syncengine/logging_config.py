"""Process-wide logging setup."""

from __future__ import annotations

import logging

from .config import LOG_FILE, LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """Configure root logging for the engine process.

    Args:
        level: Log level name (defaults to SYNC_LOG_LEVEL)
        log_file: Optional file to append log lines to (defaults to SYNC_LOG_FILE)
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    path = log_file or LOG_FILE
    if path:
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    # APScheduler logs every job submission at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
