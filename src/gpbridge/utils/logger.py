"""Logging helpers for gpbridge.

Provide a `configure_logging` utility, a convenience function to
retrieve a named logger, and an adapter tagging records with the
gnuplot session they belong to.
"""

import logging
from typing import Any, MutableMapping, Optional


DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
SESSION_PREFIX_FORMAT = "GNUPLOT (%s) %s"


def configure_logging(
    level: int = logging.INFO, log_file: Optional[str] = None
) -> None:
    """Configure root logger for the application.

    Args:
        level: Logging level (e.g., logging.INFO, logging.DEBUG).
        log_file: Optional path to a log file. If provided, file handler is added.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    logging.basicConfig(level=level, format=DEFAULT_LOG_FORMAT, handlers=handlers)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Return a logger with the given `name`.

    The returned logger will use the root configuration applied by
    `configure_logging` if it has been called.
    """
    return logging.getLogger(name)


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with the id of the gnuplot session."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        return SESSION_PREFIX_FORMAT % (self.extra["sid"], msg), kwargs


def get_session_logger(name: str, sid: str) -> SessionLoggerAdapter:
    return SessionLoggerAdapter(get_logger(name), {"sid": sid})
