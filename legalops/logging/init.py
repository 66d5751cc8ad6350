from __future__ import annotations

import logging
import sys
from typing import TextIO

"""Application logging.

Every line written by import and reminder runs starts with a label
(``INFO``, ``WARN``, ``ERROR``, ``SUMMARY``). Modules log through
``logging.getLogger(__name__)``; being children of ``legalops`` they share the
single stdout handler installed by :func:`setup_logging`.
"""

__all__ = [
    "LabeledFormatter",
    "setup_logging",
    "get_logger",
    "set_debug",
    "log_summary",
    "reset_logging",
    "SUMMARY_LEVEL",
]

LOGGER_NAME = "legalops"

# INFO(20) と WARNING(30) の間
SUMMARY_LEVEL = 25

LEVEL_LABELS = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    SUMMARY_LEVEL: "SUMMARY",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "CRITICAL",
}

_configured: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """``<LABEL> <message>``; a traceback, if any, follows on the next lines."""

    def format(self, record: logging.LogRecord) -> str:
        label = LEVEL_LABELS.get(record.levelno, record.levelname)
        text = f"{label} {record.getMessage()}"
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def setup_logging(level: int = logging.INFO, stream: TextIO | None = None) -> logging.Logger:
    """Install the labeled handler on the ``legalops`` logger.

    Calling it again returns the already configured logger unchanged.
    """
    global _configured
    if _configured is not None:
        return _configured

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")
    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.setLevel(level)
    for old in list(app_logger.handlers):
        app_logger.removeHandler(old)

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(LabeledFormatter())
    app_logger.addHandler(handler)
    # root 側のハンドラで二重出力しない
    app_logger.propagate = False

    _configured = app_logger
    return app_logger


def get_logger() -> logging.Logger:
    return _configured if _configured is not None else setup_logging()


def set_debug(logger: logging.Logger) -> None:
    logger.setLevel(logging.DEBUG)
    for h in logger.handlers:
        h.setLevel(logging.DEBUG)


def log_summary(message: str) -> None:
    """Emit ``SUMMARY <message>``."""
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Undo :func:`setup_logging` (used by tests)."""
    global _configured
    if _configured is not None:
        for h in list(_configured.handlers):
            _configured.removeHandler(h)
        _configured.propagate = True
    _configured = None
