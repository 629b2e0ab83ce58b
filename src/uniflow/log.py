"""Console-style logging with a subsystem prefix.

Format: [Subsystem] message

Debug output is gated separately from the logger level so a running
context can toggle it from a settings change.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("uniflow")

_debug_enabled: bool = False

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def set_debug_enabled(enabled: bool) -> None:
    """Turn debug-level messages on or off."""
    global _debug_enabled
    _debug_enabled = bool(enabled)


def is_debug_enabled() -> bool:
    return _debug_enabled


def log(level: str, subsystem: str, *messages: object) -> None:
    """Log messages under a subsystem prefix. Unknown levels log as info."""
    levelno = _LEVELS.get(level, logging.INFO)
    if levelno == logging.DEBUG and not _debug_enabled:
        return
    text = " ".join(str(m) for m in messages)
    exc = next((m for m in messages if isinstance(m, BaseException)), None)
    logger.log(levelno, "[%s] %s", subsystem, text, exc_info=exc)


def debug(subsystem: str, *messages: object) -> None:
    log("debug", subsystem, *messages)


def info(subsystem: str, *messages: object) -> None:
    log("info", subsystem, *messages)


def warn(subsystem: str, *messages: object) -> None:
    log("warn", subsystem, *messages)


def error(subsystem: str, *messages: object) -> None:
    log("error", subsystem, *messages)
