"""
Unit tests for the logging setup.
"""

import logging

import pytest

from crawl_sink.core.logging import DRIVER_LOGGERS, get_logger, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_level_name_is_case_insensitive(self, restore_root_logger):
        setup_logging("debug")

        assert restore_root_logger.level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        setup_logging("chatty")

        assert restore_root_logger.level == logging.INFO

    def test_driver_loggers_held_at_warning(self, restore_root_logger):
        setup_logging("DEBUG")

        for name in DRIVER_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_get_logger_is_named(self):
        assert get_logger("crawl_sink.worker").name == "crawl_sink.worker"
