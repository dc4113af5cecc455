"""Logging setup shared by the server, scheduler and CLI."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "googleapiclient", "httpx")


def setup_logging(log_path: Path | str | None = None, level: str = "INFO") -> logging.Logger:
    """Configure logging to output to stdout and optionally to a file.

    Calling this more than once replaces the handlers installed by the
    previous call instead of stacking duplicates.

    Args:
        log_path: Optional path to a log file.
        level: Level name for the paddysync logger.

    Returns:
        The configured ``paddysync`` logger.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger("paddysync")
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_path is not None:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        # Also capture uvicorn and scheduler logs to file
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "apscheduler"):
            logging.getLogger(name).addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
