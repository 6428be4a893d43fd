"""Tests for logging setup and the per-message context adapter."""

import logging

from discord_copilot.config.logging import ROOT_LOGGER_NAME, ColoredFormatter, ContextAdapter, get_logger, setup_logging
from discord_copilot.config.settings import Settings


class TestGetLogger:
    def test_children_of_package_logger(self):
        """Foreign module names are nested under the package logger."""
        assert get_logger("some.module").name == f"{ROOT_LOGGER_NAME}.some.module"

    def test_package_names_not_prefixed_twice(self):
        """Names already under the package are used as-is."""
        assert get_logger("discord_copilot.bot.pipeline").name == "discord_copilot.bot.pipeline"


class TestContextAdapter:
    def test_appends_extra_fields(self):
        """Adapter context is appended as key=value pairs."""
        adapter = ContextAdapter(logging.getLogger("test"), {"channel_id": "1", "user_id": "2"})
        msg, _ = adapter.process("Processing message", {})
        assert msg == "Processing message | channel_id=1 user_id=2"

    def test_per_call_context_merged(self):
        """context= on a single call adds to the adapter's fields and is not passed on to logging."""
        adapter = ContextAdapter(logging.getLogger("test"), {"channel_id": "1"})
        msg, kwargs = adapter.process("Sent", {"context": {"response_length": 12}})
        assert msg == "Sent | channel_id=1 response_length=12"
        assert "context" not in kwargs

    def test_no_context_leaves_message_alone(self):
        """No context, no separator."""
        adapter = ContextAdapter(logging.getLogger("test"), {})
        assert adapter.process("plain", {})[0] == "plain"


class TestSetupLogging:
    def test_configures_package_logger(self, tmp_path):
        """setup_logging sets the level, stops propagation and adds console and file handlers."""
        log_file = tmp_path / "logs" / "bot.log"
        setup_logging(Settings(log_level="DEBUG", log_file=log_file))

        root = logging.getLogger(ROOT_LOGGER_NAME)
        assert root.level == logging.DEBUG
        assert root.propagate is False
        assert len(root.handlers) == 2
        assert log_file.exists()

        for handler in root.handlers:
            handler.close()
        root.handlers.clear()

    def test_colored_formatter_restores_levelname(self):
        """Colouring must not leak into records seen by other handlers."""
        record = logging.LogRecord("x", logging.WARNING, __file__, 1, "hello", None, None)
        ColoredFormatter("%(levelname)s %(message)s").format(record)
        assert record.levelname == "WARNING"
