"""Logging helpers shared by the import and search scripts."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"
LOG_FILENAME = "holiday_offers.log"
# The driver logs every reconnection attempt and topology change at INFO.
NOISY_LOGGERS = ("cassandra",)


def configure_logging(
    level: str,
    log_dir: Path,
    *,
    filename: str = LOG_FILENAME,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> Path:
    """Send records to stderr and to ``log_dir/filename``; returns the log file path."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / filename
    root_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=root_level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
        force=True,
    )
    for name in quiet:
        logging.getLogger(name).setLevel(max(logging.WARNING, root_level))
    return log_file
