"""Tests for the morphoclone logging helpers."""

import logging

import pytest

from morphoclone.core.logging_config import (
    LOGGER_NAME,
    RELATED_LOGGERS,
    LoggerMixin,
    apply_logger_overrides,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def restore_loggers():
    """Put back handlers and levels touched by a test."""
    names = [LOGGER_NAME, *RELATED_LOGGERS, "morphoclone.storage"]
    saved = {name: (logging.getLogger(name).level, list(logging.getLogger(name).handlers)) for name in names}
    yield
    for name, (level, handlers) in saved.items():
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers[:] = handlers


class TestGetLogger:
    def test_root_logger(self):
        assert get_logger().name == "morphoclone"

    def test_child_logger(self):
        assert get_logger("storage").name == "morphoclone.storage"
        assert get_logger("storage").parent is get_logger()


class TestConfigureLogging:
    def test_sets_level_and_handler(self):
        get_logger().handlers.clear()

        logger = configure_logging(level=logging.INFO)

        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_handler_added_once(self):
        get_logger().handlers.clear()

        configure_logging(level=logging.INFO)
        logger = configure_logging(level=logging.DEBUG)

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_custom_handler(self):
        get_logger().handlers.clear()
        handler = logging.NullHandler()

        logger = configure_logging(handler=handler)

        assert logger.handlers == [handler]

    def test_library_level(self):
        configure_logging(level=logging.DEBUG, library_level=logging.ERROR)

        for name in RELATED_LOGGERS:
            assert logging.getLogger(name).level == logging.ERROR

    def test_library_level_defaults_to_level(self):
        configure_logging(level=logging.INFO)

        assert logging.getLogger("botocore").level == logging.INFO

    def test_apply_logger_overrides(self):
        apply_logger_overrides({"botocore": logging.CRITICAL, "morphoclone.storage": logging.DEBUG})

        assert logging.getLogger("botocore").level == logging.CRITICAL
        assert get_logger("storage").level == logging.DEBUG


class TestLoggerMixin:
    def test_logger_named_after_class(self):
        class MediaCopier(LoggerMixin):
            pass

        assert MediaCopier()._logger.name == "morphoclone.MediaCopier"

    def test_messages_reach_caplog(self, caplog):
        class MediaCopier(LoggerMixin):
            def copy(self):
                self._logger.warning("copy skipped")

        with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
            MediaCopier().copy()

        assert "copy skipped" in caplog.text
