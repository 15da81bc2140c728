"""
Unit tests for logging setup.
"""

import logging

import pytest

from session_ledger.config.logger import get_logger, setup_logging


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestLogging:
    """Test logger configuration."""

    def test_level_from_environment(self, monkeypatch, restore_root_logger):
        """Verify LOG_LEVEL sets the root level."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        setup_logging()
        assert restore_root_logger.level == logging.DEBUG

    def test_unknown_level_defaults_to_warning(self, monkeypatch, restore_root_logger):
        """Verify an unknown LOG_LEVEL falls back to WARNING."""
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        setup_logging()
        assert restore_root_logger.level == logging.WARNING

    def test_get_logger_is_named(self):
        """Verify loggers are looked up by name."""
        assert get_logger("session_ledger.pricing") is logging.getLogger("session_ledger.pricing")
