"""Logging configuration."""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty HTTP and client loggers pulled in by supabase-py
_NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "supabase", "gotrue")


def setup_logging(
    level: int | str = logging.INFO,
    log_to_file: bool = False,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> None:
    """Configure application-wide logging.

    Args:
        level: Logging level, as a number or a name such as "DEBUG"
        log_to_file: Whether to also log to a file
        log_filename: Custom log filename (default: sync_YYYY-MM-DD.log)
        log_dir: Directory for the log file (default: ./logs)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_to_file:
        log_dir = Path(log_dir or "logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        if log_filename is None:
            log_filename = f"sync_{datetime.now().strftime('%Y-%m-%d')}.log"
        handlers.append(logging.FileHandler(log_dir / log_filename, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("fork_and_spoon").debug("Logging initialized")


class LogContext:
    """Log the start, completion time and failure of an operation.

    Usage:
        with LogContext(logger, "Pulling household data"):
            manager.pull_from_cloud(household_id)
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time = 0.0

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.info("%s... started", self.operation)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.monotonic() - self.start_time
        if exc_type is None:
            self.logger.info("%s... completed (%.2fs)", self.operation, elapsed)
        else:
            self.logger.error(
                "%s... failed (%.2fs): %s", self.operation, elapsed, exc_val
            )
        return False
