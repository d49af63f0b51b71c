"""
Tests for logging setup.
"""

import logging

import pytest

from csv_recon.config import LoggingConfig
from csv_recon.utils.logging_config import level_from_name, setup_logging, setup_logging_from_config


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger("csv_recon")
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []


class TestLogging:
    """Tests for the logging helpers."""

    def test_level_from_name(self):
        assert level_from_name("debug") == logging.DEBUG
        assert level_from_name("WARNING") == logging.WARNING
        assert level_from_name("chatty") == logging.INFO

    def test_setup_does_not_stack_handlers(self):
        setup_logging(logging.INFO)
        logger = setup_logging(logging.WARNING)
        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.WARNING

    def test_configured_file_receives_debug(self, tmp_path):
        log_file = tmp_path / "logs" / "recon.log"
        logger = setup_logging_from_config(LoggingConfig(level="WARNING", file=str(log_file)))

        logging.getLogger("csv_recon.matching.engine").debug("scoring details")
        for handler in logger.handlers:
            handler.flush()

        assert "scoring details" in log_file.read_text()

    def test_verbose_overrides_level(self):
        logger = setup_logging_from_config(LoggingConfig(level="ERROR"), verbose=True)
        assert logger.handlers[0].level == logging.DEBUG
