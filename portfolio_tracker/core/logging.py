"""Process-wide logging setup for the portfolio tracker service."""

from __future__ import annotations

import logging
import sys

_CONFIGURED = False

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every request or statement at INFO
_QUIET_LOGGERS = ("sqlalchemy", "aiosqlite", "httpx", "httpcore", "passlib")


def resolve_level(level: int | str) -> int:
    """Accept either a numeric level or a name such as ``"debug"``."""

    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}")
    return resolved


def setup_logging(level: int | str = logging.INFO) -> bool:
    """Send service logs to stdout once per process.

    Returns ``True`` when this call installed the handler.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return False

    root_logger = logging.getLogger()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(resolve_level(level))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _CONFIGURED = True
    return True


__all__ = ["resolve_level", "setup_logging"]
