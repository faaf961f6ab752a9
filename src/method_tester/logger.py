"""Logging for method test runs.

One package logger (``method_tester``) with a compact terminal format that
tags records with the run stage (compose, execute, paginate, save-schema).
"""

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from method_tester.errors import CancelledError


class _StageFormatter(logging.Formatter):
    """``HH:MM:SS.mmm LEVEL [stage] message``."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = time.strftime("%H:%M:%S", time.localtime(record.created))
        millis = f"{record.created % 1:.3f}"[1:]
        stage = getattr(record, "stage", None)
        stage_tag = f" [{stage}]" if stage else ""
        message = f"{timestamp}{millis} {record.levelname:<7}{stage_tag} {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


_logger = logging.getLogger("method_tester")


def setup_logging(level: str | int = logging.INFO) -> logging.Logger:
    """Configure and return the package logger. Safe to call more than once."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    _logger.setLevel(level)

    if not _logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(_StageFormatter())
        _logger.addHandler(handler)

    return _logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the package logger, or a child of it for ``name``."""
    if name:
        return _logger.getChild(name)
    return _logger


@contextmanager
def log_stage(stage_name: str, logger: logging.Logger | None = None) -> Iterator[logging.Logger]:
    """Log entry and exit of ``stage_name`` with timing."""
    logger = logger or get_logger()
    start = time.perf_counter()
    extra = {"stage": stage_name}
    logger.debug("%s started", stage_name, extra=extra)
    try:
        yield logger
    except CancelledError:
        logger.info("%s cancelled (%.2fs)", stage_name, time.perf_counter() - start, extra=extra)
        raise
    except Exception:
        logger.error("%s failed (%.2fs)", stage_name, time.perf_counter() - start, extra=extra)
        raise
    else:
        logger.debug("%s done (%.2fs)", stage_name, time.perf_counter() - start, extra=extra)
