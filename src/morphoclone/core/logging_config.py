"""Logging setup shared by the duplicators, blob copiers and task handlers.

Everything in morphoclone logs under the ``morphoclone`` namespace. Modules
use ``logging.getLogger(__name__)``; classes mix in :class:`LoggerMixin`
and log to ``morphoclone.<ClassName>``. The SQL and S3 client libraries are
tuned together with it because a duplication run drives both.

Usage:
    >>> import logging
    >>> from morphoclone.core.logging_config import configure_logging, get_logger
    >>> configure_logging(level=logging.INFO, library_level=logging.WARNING)
    >>> get_logger("storage").info("Copying media for project 12")
"""

import logging
from typing import Any

LOGGER_NAME = "morphoclone"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# SQL statements and S3 requests of a run are logged by these
RELATED_LOGGERS = [
    "sqlalchemy.engine",
    "boto3",
    "botocore",
]


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the morphoclone logger, or ``morphoclone.<name>`` when a name is given."""
    if name is None:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def configure_logging(
    level: int = logging.WARNING,
    library_level: int | None = None,
    format_string: str = DEFAULT_FORMAT,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """Set the morphoclone log level and attach a handler.

    A handler is attached only the first time, so calling this again just
    changes levels.

    Args:
        level: Level of the ``morphoclone`` logger.
        library_level: Level for ``sqlalchemy.engine``, ``boto3`` and
            ``botocore``. Follows ``level`` when omitted.
        format_string: Used for the default stream handler.
        handler: Handler to attach instead of a stderr stream handler.

    Returns:
        The ``morphoclone`` logger.
    """
    if library_level is None:
        library_level = level

    logger = get_logger()
    logger.setLevel(level)

    if not logger.handlers:
        if handler is None:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(format_string))
        logger.addHandler(handler)

    for library in RELATED_LOGGERS:
        logging.getLogger(library).setLevel(library_level)

    return logger


def apply_logger_overrides(overrides: dict[str, Any]) -> None:
    """Set individual logger levels, e.g. ``{"botocore": logging.ERROR}``."""
    for logger_name, logger_level in overrides.items():
        logging.getLogger(logger_name).setLevel(logger_level)


class LoggerMixin:
    """Gives a class a ``_logger`` named ``morphoclone.<ClassName>``.

    Example:
        >>> class MediaCopier(LoggerMixin):
        ...     def copy(self):
        ...         self._logger.info("Copy started")
    """

    @property
    def _logger(self) -> logging.Logger:
        return get_logger(type(self).__name__)


__all__ = [
    "LOGGER_NAME",
    "get_logger",
    "configure_logging",
    "apply_logger_overrides",
    "LoggerMixin",
]
