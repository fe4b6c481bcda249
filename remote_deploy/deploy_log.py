"""Per-run log file and console output.

Every line looks like ``[2026-01-31 12:00:00] INFO: message`` and is written both
to stderr and to ``deploy_<YYYYmmdd_HHMMSS>.log``. A custom SUCCESS level sits
between INFO and WARNING so milestones stand out in the file.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOGGER_NAME = "remote_deploy"
LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(LOGGER_NAME)


def log_file_name(started_at: datetime) -> str:
    return f"deploy_{started_at.strftime('%Y%m%d_%H%M%S')}.log"


def configure_logging(*, log_dir: Path, started_at: datetime | None = None, stream=None) -> Path:
    """Attach a file handler and a console handler to the package logger.

    Handlers from a previous call are removed so repeated runs in one process
    (tests) do not duplicate lines.
    """
    started_at = started_at or datetime.now()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / log_file_name(started_at)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    close_logging()

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(formatter)
    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return log_path


def log_success(message: str, *args) -> None:
    logger.log(SUCCESS, message, *args)


class StepLogger:
    """Numbered stage banners, e.g. ``Step 3: Preparing remote environment``."""

    def __init__(self) -> None:
        self.step_number = 0

    def __call__(self, message: str, *, icon: str = "🚀") -> None:
        self.step_number += 1
        logger.info("%s Step %d: %s", icon, self.step_number, message)


def close_logging() -> None:
    """Detach and close the handlers added by `configure_logging`."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
