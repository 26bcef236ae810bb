"""
Tests for structured logging configuration.

Validates:
  1. configure_logging() is idempotent (safe to call twice)
  2. the root level follows the requested level
  3. JSON output mode renders valid JSON lines
  4. Third-party HTTP loggers are suppressed
  5. Reconfiguring switches format in place
  6. The [logging] config section is applied, explicit arguments winning
  7. API keys are masked before rendering
  8. Core modules log through structlog
"""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from planstream.core.config import LoggingConfig
from planstream.core.logging import (
    HANDLER_NAME,
    configure_from_config,
    configure_logging,
    mask_secrets,
)


class TestConfigureLogging:
    """configure_logging() sets up structlog + stdlib correctly."""

    def setup_method(self) -> None:
        """Reset logging state between tests."""
        logging.getLogger().handlers.clear()
        structlog.reset_defaults()

    def teardown_method(self) -> None:
        logging.getLogger().handlers.clear()
        structlog.reset_defaults()

    def test_idempotent_double_call(self) -> None:
        configure_logging(level="DEBUG")
        first = len(logging.getLogger().handlers)

        configure_logging(level="DEBUG")
        second = len(logging.getLogger().handlers)

        assert first == second
        assert first >= 1

    def test_sets_root_log_level(self) -> None:
        configure_logging(level="WARNING")
        assert logging.getLogger().level == logging.WARNING

        configure_logging(level="debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self) -> None:
        configure_logging(level="chatty")
        assert logging.getLogger().level == logging.INFO

    def test_suppresses_http_noise(self) -> None:
        configure_logging(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_json_output_renders_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(level="INFO", json_output=True)
        log = structlog.get_logger("test.json").bind(stream_id="abc123")
        log.info("stream_completed", deltas=3)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        parsed = json.loads(line)
        assert parsed["event"] == "stream_completed"
        assert parsed["stream_id"] == "abc123"
        assert parsed["deltas"] == 3
        assert parsed["level"] == "info"

    def test_reconfigure_switches_to_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(level="INFO")
        configure_logging(level="INFO", json_output=True)
        ours = [h for h in logging.getLogger().handlers if h.get_name() == HANDLER_NAME]
        assert len(ours) == 1

        structlog.get_logger("test.switch").info("plan_confirmed", workstreams=2)
        line = capsys.readouterr().err.strip().splitlines()[-1]
        assert json.loads(line)["workstreams"] == 2


class TestConfigureFromConfig:
    def setup_method(self) -> None:
        logging.getLogger().handlers.clear()
        structlog.reset_defaults()

    def teardown_method(self) -> None:
        logging.getLogger().handlers.clear()
        structlog.reset_defaults()

    def test_config_level_applies(self) -> None:
        configure_from_config(LoggingConfig(level="debug"))
        assert logging.getLogger().level == logging.DEBUG

    def test_explicit_level_wins(self) -> None:
        configure_from_config(LoggingConfig(level="DEBUG"), level="ERROR")
        assert logging.getLogger().level == logging.ERROR

    def test_json_format_from_config(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_from_config(LoggingConfig(level="INFO", format="json"))
        structlog.get_logger("test.cfg").info("stream_started", messages=1)
        line = capsys.readouterr().err.strip().splitlines()[-1]
        assert json.loads(line)["event"] == "stream_started"


class TestMaskSecrets:
    def test_secret_fields_are_masked(self) -> None:
        out = mask_secrets(None, "info", {"event": "x", "api_key": "sk-abcdef123456"})
        assert out["api_key"] == "[REDACTED]"

    def test_keys_inside_strings_are_masked(self) -> None:
        url = (
            "https://generativelanguage.googleapis.com/v1beta/models/m:generateContent"
            "?key=AIzaSyA1234567890abcdefghij"
        )
        out = mask_secrets(None, "error", {"event": "stream_failed", "error": f"500 for {url}"})
        assert "AIza" not in out["error"]
        assert "[REDACTED]" in out["error"]

    def test_plain_values_pass_through(self) -> None:
        out = mask_secrets(None, "info", {"event": "stream_completed", "provider": "groq"})
        assert out == {"event": "stream_completed", "provider": "groq"}


class TestStructlogIntegration:
    """Core modules use structlog loggers."""

    def test_engine_uses_structlog(self) -> None:
        import planstream.chat.engine as engine_mod

        assert hasattr(engine_mod.logger, "bind")

    def test_reconciler_uses_structlog(self) -> None:
        import planstream.streaming.reconciler as reconciler_mod

        assert hasattr(reconciler_mod.logger, "bind")
