"""Tests for structured logging configuration."""

import json
import logging
import re
from collections.abc import Iterator
from io import StringIO
from typing import Any

import pytest
import structlog

from outfitter_tenancy.logging_config import REDACTED, configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Reset structlog state after each test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


def _capture_log_output(environment: str, log_level: str = "DEBUG", **fields: Any) -> str:
    """Configure logging, emit a message, return captured output."""
    configure_logging(environment=environment, log_level=log_level)

    stream = StringIO()
    root = logging.getLogger()
    if not root.handlers or not isinstance(root.handlers[0], logging.StreamHandler):
        raise RuntimeError("Expected configure_logging to set up a StreamHandler")

    original_stream = root.handlers[0].stream
    root.handlers[0].stream = stream

    logger = structlog.get_logger("outfitter_tenancy.test")
    logger.info("test_event", **(fields or {"key": "value"}))

    root.handlers[0].stream = original_stream
    return stream.getvalue()


class TestConfigureLogging:
    def test_configure_production_json(self) -> None:
        """Production environment produces valid JSON output."""
        output = _capture_log_output("production")
        parsed = json.loads(output)
        assert parsed["event"] == "test_event"
        assert parsed["key"] == "value"
        assert parsed["level"] == "info"
        assert parsed["logger"] == "outfitter_tenancy.test"

    def test_configure_development_console(self) -> None:
        """Development environment produces human-readable console output."""
        output = _capture_log_output("development")
        plain = re.sub(r"\x1b\[[0-9;]*m", "", output)
        assert "test_event" in plain
        assert "key=value" in plain

    def test_configure_sets_log_level(self) -> None:
        configure_logging(log_level="WARNING")
        assert logging.getLogger().level == logging.WARNING

    def test_configure_includes_timestamp(self) -> None:
        output = _capture_log_output("production")
        parsed = json.loads(output)
        # ISO format contains 'T' separator
        assert "T" in parsed["timestamp"]

    def test_tenant_contextvars_are_merged(self) -> None:
        structlog.contextvars.bind_contextvars(outfitter_id=102, user_id="u-1")
        parsed = json.loads(_capture_log_output("production"))
        assert parsed["outfitter_id"] == 102
        assert parsed["user_id"] == "u-1"


class TestRedaction:
    def test_sensitive_keys_redacted(self) -> None:
        output = _capture_log_output("production", api_key="of_live_abc", key_prefix="of_live_a")
        parsed = json.loads(output)
        assert parsed["api_key"] == REDACTED
        assert parsed["key_prefix"] == "of_live_a"
        assert "of_live_abc" not in output

    def test_nested_headers_redacted(self) -> None:
        output = _capture_log_output(
            "production",
            headers={"X-API-Key": "of_live_abc", "Accept": "application/json"},
        )
        parsed = json.loads(output)
        assert parsed["headers"] == {"X-API-Key": REDACTED, "Accept": "application/json"}
