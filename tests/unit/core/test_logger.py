"""Tests for logging setup."""

import logging
import logging.handlers
import uuid

import pytest

from signoff.core.config import Settings
from signoff.core.logger import configure_from_settings, setup_logger


@pytest.fixture
def logger_name():
    """Unique logger name so handlers do not leak between tests."""
    name = f"signoff-test-{uuid.uuid4().hex[:8]}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


class TestSetupLogger:
    """Tests for setup_logger."""

    def test_console_only_by_default(self, logger_name):
        logger = setup_logger(logger_name, level="DEBUG")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_file_handler_when_log_dir_set(self, logger_name, tmp_path):
        logger = setup_logger(logger_name, log_dir=str(tmp_path / "logs"))
        logger.info("hello")

        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers)
        assert (tmp_path / "logs" / f"{logger_name}.log").exists()

    def test_no_duplicate_handlers(self, logger_name):
        setup_logger(logger_name)
        logger = setup_logger(logger_name)
        assert len(logger.handlers) == 1

    def test_invalid_level(self, logger_name):
        with pytest.raises(ValueError):
            setup_logger(logger_name, level="LOUD")


def test_configure_from_settings(tmp_path):
    settings = Settings(_env_file=None, log_level="WARNING", log_dir=str(tmp_path))
    logger = configure_from_settings(settings)
    try:
        assert logger.name == "signoff"
        assert logger.level == logging.WARNING
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)


def test_request_id_in_output(logger_name, tmp_path):
    logger = setup_logger(logger_name, log_dir=str(tmp_path), console_logging=False)
    logger.info("decision recorded", extra={"request_id": "abc-123"})
    logger.info("no context")
    for handler in logger.handlers:
        handler.flush()

    lines = (tmp_path / f"{logger_name}.log").read_text().splitlines()
    assert "[req=abc-123] decision recorded" in lines[0]
    assert "[req=-] no context" in lines[1]
