"""
Logging for the map selection core.

Every module logs through a child of the ``mapselect`` logger. The console shows
the selection and measurement summaries; the log file also keeps the per-request
query parameters, cache hits and skipped geometries written at DEBUG.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = 'mapselect'
DEFAULT_LOG_DIR = Path(__file__).parent.parent / 'logs'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_dir: Optional[Path] = None) -> Path:
    """
    Attach a console handler (INFO) and a per-run DEBUG file to ``mapselect``.

    Handlers from an earlier call are closed and replaced, so a long-lived
    process can start a fresh log file for each run.

    Returns:
    --------
    Path
        The ``mapselect_<timestamp>.log`` file written for this run
    """
    log_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"mapselect_{datetime.now():%Y%m%d_%H%M%S}.log"

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG)
    while root.handlers:
        old = root.handlers.pop()
        old.close()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter('%(message)s'))
    root.addHandler(console)

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    root.addHandler(file_handler)

    root.debug(f"Logging initialized: {log_file}")
    return log_file


def get_logger(name: str) -> logging.Logger:
    """Child of the ``mapselect`` logger for module `name` (pass ``__name__``)."""
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')
