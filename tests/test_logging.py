"""
Unit tests for logging and configuration helpers.
"""

import logging

import orjson
import pytest

from utils.config import ConfigurationError, Settings
from utils.logging import JsonFormatter, setup_logging


def _record(msg: str = "Marker updated", **extra) -> logging.LogRecord:
    record = logging.LogRecord("apps.harvester.cursors", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Structured log lines."""

    def test_includes_message_and_extra(self):
        line = JsonFormatter().format(_record(marker="e5"))

        payload = orjson.loads(line)
        assert payload["message"] == "Marker updated"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "apps.harvester.cursors"
        assert payload["marker"] == "e5"

    def test_non_serializable_extra_rendered_as_text(self):
        line = JsonFormatter().format(_record(path=object()))
        assert "object at" in orjson.loads(line)["path"]


class TestSetupLogging:
    """Root logger configuration."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_single_handler_after_repeated_setup(self):
        setup_logging(level="DEBUG", format_type="text")
        setup_logging(level="WARNING", format_type="json")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.WARNING

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            setup_logging(format_type="xml")


class TestSettingsRequire:
    """Required setting checks."""

    def test_missing_values_listed(self):
        config = Settings(MARKER_BUCKET="cursors", MARKER_KEY="  ", _env_file=None)

        with pytest.raises(ConfigurationError, match="MARKER_KEY, RESULT_BUCKET"):
            config.require("MARKER_BUCKET", "MARKER_KEY", "RESULT_BUCKET")

    def test_present_values_pass(self):
        config = Settings(RESULT_BUCKET="metrics", _env_file=None)
        config.require("RESULT_BUCKET")
