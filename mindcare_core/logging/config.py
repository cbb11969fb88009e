# =============================================================================
# mindcare_core/logging/config.py
# Logging Configuration for MindCare
# =============================================================================

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")

# Chatty at INFO; every Drive call would otherwise be logged twice
QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "streamlit", "watchdog")


def _file_handler(log_dir: Optional[Path], log_filename: Optional[str]) -> logging.Handler:
    directory = Path(log_dir) if log_dir else LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    filename = log_filename or f"mindcare_{datetime.now():%Y-%m-%d}.log"
    return logging.FileHandler(directory / filename, encoding="utf-8")


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Configure logging for the app and the sync core.

    Args:
        level: Level as a number or a name such as "DEBUG"
        log_to_file: Also write a daily file (mindcare_YYYY-MM-DD.log)
        log_filename: Override the daily file name
        log_dir: Directory for the file (default: ./logs)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        handlers.append(_file_handler(log_dir, log_filename))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("mindcare_core").info(
        f"Logging initialized at {logging.getLevelName(level)}"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Module or service logger.

    Usage:
        from mindcare_core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Loading patients")
    """
    return logging.getLogger(name)


class LogContext:
    """
    Times a block and logs its start and outcome.

    Usage:
        with LogContext(logger, "Backfilling remote documents"):
            ...
        # Backfilling remote documents... started
        # Backfilling remote documents... completed (0.42s)

    Exceptions are logged and re-raised.
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.elapsed: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.log(self.level, f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self._started

        if exc_type is None:
            self.logger.log(self.level, f"{self.operation}... completed ({self.elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed ({self.elapsed:.2f}s): {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
        return False
