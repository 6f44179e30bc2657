"""Logging setup for **spider_stream**.

Every module logs through one named logger, :data:`logger`::

    from spider_stream.logger import logger
    logger.info("Crawl started")

Records go to stderr, stdout being reserved for crawl output, and on request
to a size-rotated log file as well. The CLI rebuilds the handlers once per
run with :func:`init_logging`.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, List, Union

LOGGER_NAME: Final[str] = "SpiderStream"
LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

#: rotation of the optional log file
MAX_LOG_BYTES: Final[int] = 5 * 1024 * 1024
LOG_BACKUPS: Final[int] = 3

Level = Union[int, str]


def build_handlers(log_file: Union[str, Path, None] = None, log_format: str = LOG_FORMAT) -> List[logging.Handler]:
    """A stderr handler, plus a rotating file handler when *log_file* is given."""
    # sys.stderr is looked up per call, it may have been swapped (click's CliRunner does)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        handlers.append(
            RotatingFileHandler(
                filename=str(log_file),
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUPS,
                encoding="utf-8",
            )
        )
    formatter = logging.Formatter(log_format)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure(
    *,
    level: Level = "INFO",
    log_file: Union[str, Path, None] = None,
    log_format: str = LOG_FORMAT,
    replace_handlers: bool = True,
) -> logging.Logger:
    """Attach fresh handlers to the project logger and set its level.

    With *replace_handlers* the previous handlers are detached and closed
    first, which releases a log file opened by an earlier call.
    """
    project_logger = logging.getLogger(LOGGER_NAME)
    project_logger.setLevel(level)
    if replace_handlers:
        for handler in list(project_logger.handlers):
            project_logger.removeHandler(handler)
            handler.close()
    for handler in build_handlers(log_file, log_format):
        project_logger.addHandler(handler)
    project_logger.propagate = False
    return project_logger


def init_logging(
    level: Level = "INFO", log_file: Union[str, Path, None] = None, log_format: str = LOG_FORMAT
) -> logging.Logger:
    return configure(level=level, log_file=log_file, log_format=log_format, replace_handlers=True)


logger: logging.Logger = init_logging(level="WARNING")

__all__ = ["logger", "configure", "init_logging", "build_handlers", "LOGGER_NAME", "LOG_FORMAT"]
