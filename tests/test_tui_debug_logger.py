"""Tests for the file-only debug logger."""

import logging

import pytest

from tui_debug_logger import TUIDebugLogger, mask_value


class TestMasking:
    """Tests for credential masking."""

    @pytest.mark.parametrize("key,value,expected", [
        ("password", "hunter2", "[REDACTED]"),
        ("auth_token", "abcdefghijklmnop", "abc...nop"),
        ("Authorization", "Basic YWRtaW46czNjcmV0", "Bas...mV0"),
        ("secret", None, "[REDACTED]"),
        ("has_token", True, "True"),
        ("url", "https://registry.test", "https://registry.test"),
    ])
    def test_mask_value(self, key, value, expected):
        assert mask_value(key, value) == expected

    def test_format_message_masks_context(self):
        message = TUIDebugLogger.format_message("Token request", token="short", url="https://r.test")
        assert message == "Token request | token=[REDACTED], url=https://r.test"

    def test_format_message_without_context(self):
        assert TUIDebugLogger.format_message("plain") == "plain"


class TestFileLogging:
    """Tests for the debug file handler."""

    def test_disabled_logger_does_nothing(self, tmp_path):
        path = tmp_path / "debug.log"
        debug_logger = TUIDebugLogger(enabled=False, debug_file_path=str(path))

        debug_logger.debug("ignored", password="hunter2")

        assert debug_logger.logger is None
        assert not path.exists()

    def test_messages_are_written_masked(self, tmp_path):
        path = tmp_path / "debug.log"
        debug_logger = TUIDebugLogger(enabled=True, debug_file_path=str(path))
        try:
            debug_logger.debug("Connecting", url="https://r.test", password="hunter2")
        finally:
            debug_logger.close()

        content = path.read_text()
        assert "Debug Mode (STANDARD) Enabled" in content
        assert "Connecting | url=https://r.test, password=[REDACTED]" in content
        assert "hunter2" not in content

    def test_close_removes_handler(self, tmp_path):
        debug_logger = TUIDebugLogger(enabled=True, debug_file_path=str(tmp_path / "debug.log"))
        handler = debug_logger.handler
        assert handler in logging.getLogger().handlers

        debug_logger.close()

        assert handler not in logging.getLogger().handlers
        assert debug_logger.handler is None
