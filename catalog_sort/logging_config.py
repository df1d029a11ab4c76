"""Run log configuration.

The run log is append-only and human-auditable: every decision the sorter
makes (skips, aborts, computed orders, write outcomes) goes to the console
and to a timestamped, leveled log file.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from pathlib import Path

LOGGER_NAME = "catalog_sort"

_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# Marker attribute so reconfiguring replaces only our own handlers.
_HANDLER_TAG = "_catalog_sort_run_log"


def configure_run_logging(log_file: str | None, level: str | int = logging.INFO) -> logging.Logger:
    """Attach console and append-mode file handlers to the run logger.

    Calling this again replaces previously installed run-log handlers instead
    of stacking duplicates.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            logger.removeHandler(handler)
            with suppress(Exception):
                handler.close()

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    setattr(stream_handler, _HANDLER_TAG, True)
    logger.addHandler(stream_handler)

    if log_file:
        path = Path(log_file)
        if path.parent and not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_TAG, True)
        logger.addHandler(file_handler)

    return logger
