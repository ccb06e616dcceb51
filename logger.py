"""
logger.py

Responsibility: Configures stdlib logging for the daemon process.
Does NOT: write log files or decide what gets logged.
"""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "watchdog", "apscheduler")


def resolve_level(level: str) -> int:
    """
    Maps a LOG_LEVEL string ("info", "DEBUG", "warn", ...) to a logging level.

    Unknown names resolve to INFO.
    """
    name = level.strip().upper()
    if name == "WARN":
        name = "WARNING"
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: str = "info") -> None:
    """
    Installs a single stderr handler on the root logger.

    Safe to call more than once; the previous handlers are replaced.

    Args:
        level: Log level name from TargetConfig.log_level.

    Returns:
        None
    """
    numeric = resolve_level(level)
    logging.basicConfig(
        level=numeric,
        format=_FORMAT,
        datefmt=_DATE_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    quiet = numeric if numeric <= logging.DEBUG else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet)
