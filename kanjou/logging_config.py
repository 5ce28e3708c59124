"""Logging setup for kanjou.

Modules log through ``logging.getLogger(__name__)``. This module configures
the package logger once and provides helpers for the structured sync and
backup events.
"""

import logging
import sys
from typing import Any, Dict, Optional

PACKAGE_LOGGER = "kanjou"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_sync_logger = logging.getLogger("kanjou.sync")
_backup_logger = logging.getLogger("kanjou.backup")


def setup_logging(level: str | int = "WARNING", stream=None) -> logging.Logger:
    """Configure the kanjou package logger.

    Calling it again replaces the handler instead of stacking a new one.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_kanjou_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._kanjou_handler = True
    logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the kanjou namespace."""
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def log_sync_operation(
    operation: str,
    count: int = 0,
    success: bool = True,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Log a sync operation with its outcome."""
    extra = {
        "operation": operation,
        "count": count,
        "success": success,
        "details": details or {},
    }
    if success:
        _sync_logger.info(f"sync {operation}: {count} records", extra={"sync": extra})
    else:
        _sync_logger.warning(
            f"sync {operation} failed: {(details or {}).get('error', 'unknown error')}",
            extra={"sync": extra},
        )


def log_backup_event(event: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Log a backup or restore event."""
    details = details or {}
    summary = ", ".join(f"{k}={v}" for k, v in sorted(details.items()))
    _backup_logger.info(f"backup {event}" + (f": {summary}" if summary else ""))
