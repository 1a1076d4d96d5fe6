# =============================================================================
# compliance_core/logging/config.py
# Logging Configuration for the Compliance State Engine
# =============================================================================

import logging
import os
import sys
import time
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Overrides the level when setup_logging() is called without one
LOG_LEVEL_ENV = "COMPLIANCE_LOG_LEVEL"

# The Supabase client logs every HTTP request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest", "realtime")


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def setup_logging(level: Union[int, str, None] = None) -> None:
    """
    Route engine logs to stdout, where Streamlit Cloud collects them.

    Args:
        level: Level number or name; defaults to $COMPLIANCE_LOG_LEVEL, then INFO
    """
    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("compliance_core").debug("Logging initialized")


def get_logger(name: str) -> logging.Logger:
    """Module logger; call as ``logger = get_logger(__name__)``."""
    return logging.getLogger(name)


class LogContext:
    """
    Context manager for logging operation timing and status.

    Usage:
        with LogContext(logger, "Syncing workflow state"):
            ...
        # Logs: "Syncing workflow state... started"
        # Logs: "Syncing workflow state... completed (0.42s)"
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.info(f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.monotonic() - self.start_time

        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({elapsed:.2f}s)")
        else:
            self.logger.error(f"{self.operation}... failed ({elapsed:.2f}s): {exc_val}")

        return False
