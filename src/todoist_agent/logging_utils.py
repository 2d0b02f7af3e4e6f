"""Logging setup with a custom TRACE level below DEBUG."""

import logging
from typing import Any

TRACE_LEVEL = 5

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
BRIEF_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def add_trace_level() -> None:
    """Register TRACE and add `Logger.trace`."""
    logging.addLevelName(TRACE_LEVEL, "TRACE")

    def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
        """Log a message with severity 'TRACE'."""
        if self.isEnabledFor(TRACE_LEVEL):
            self._log(TRACE_LEVEL, message, args, **kwargs)

    logging.Logger.trace = trace  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    """Get a logger with trace support."""
    if not hasattr(logging.Logger, "trace"):
        add_trace_level()
    return logging.getLogger(name)


def configure_logging(verbose: bool = False, trace: bool = False) -> None:
    """
    Configure root logging for the command-line entry points.

    Args:
        verbose: Log at DEBUG with logger names
        trace: Log at TRACE, including raw proxy payloads
    """
    add_trace_level()

    if trace:
        logging.basicConfig(level=TRACE_LEVEL, format=LOG_FORMAT)
        third_party_level = logging.DEBUG
    elif verbose:
        logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT)
        third_party_level = logging.INFO
    else:
        logging.basicConfig(level=logging.INFO, format=BRIEF_LOG_FORMAT)
        third_party_level = logging.WARNING

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
