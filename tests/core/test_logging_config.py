"""Tests for logging configuration."""

import json
import logging

import pytest

from archsim.core.logging_config import JsonFormatter, configure_logging


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_formats_record_with_extra(self):
        """Records become one JSON object; extras are grouped."""
        record = logging.LogRecord(
            name="archsim.server.engine",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="graph_deployed: nodes=%d",
            args=(4,),
            exc_info=None,
        )
        record.request_path = "/users"

        data = json.loads(JsonFormatter().format(record))
        assert data["level"] == "INFO"
        assert data["logger"] == "archsim.server.engine"
        assert data["message"] == "graph_deployed: nodes=4"
        assert data["extra"] == {"request_path": "/users"}


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_env_level_and_json(self, monkeypatch):
        """Environment variables select level and format."""
        monkeypatch.setenv("ARCHSIM_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("ARCHSIM_LOG_FORMAT", "json")

        configure_logging(force=True)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_explicit_arguments_win(self, monkeypatch):
        """Arguments override the environment."""
        monkeypatch.setenv("ARCHSIM_LOG_LEVEL", "DEBUG")

        configure_logging(level="ERROR", format="text", force=True)

        assert logging.getLogger().level == logging.ERROR
        assert logging.getLogger("aiohttp.access").level == logging.WARNING
