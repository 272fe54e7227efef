"""Tests for structured logging module."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import structlog

from orion.core.logging import (
    _NOISE_LOGGERS,
    _session_context,
    add_otel_context,
    add_session_context,
    configure_logging,
    redact_sensitive_fields,
    set_session_context,
)

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_logging():
    """Reset logging and session context between tests."""
    token = _session_context.set(None)
    yield
    _session_context.reset(token)
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    for name in _NOISE_LOGGERS:
        logging.getLogger(name).handlers.clear()


# ---------------------------------------------------------------------------
# ContextVar accessors
# ---------------------------------------------------------------------------


class TestSessionContext:
    def test_set_session_context(self):
        set_session_context("s1")
        assert _session_context.get() == "s1"

    def test_default_is_none(self):
        assert _session_context.get() is None


class TestAddSessionContext:
    def test_injects_session_id(self):
        set_session_context("abc")
        result = add_session_context(None, "info", {"event": "test"})
        assert result["session_id"] == "abc"

    def test_handles_unset_context(self):
        result = add_session_context(None, "info", {"event": "test"})
        assert result["session_id"] is None


class TestRedactSensitiveFields:
    def test_masks_credential_keys(self):
        result = redact_sensitive_fields(
            None, "info", {"event": "fetch", "access_token": "abc", "url": "https://x"}
        )
        assert result == {"event": "fetch", "access_token": "[redacted]", "url": "https://x"}

    def test_masks_one_level_inside_mappings(self):
        result = redact_sensitive_fields(
            None, "info", {"event": "call", "args": {"Authorization": "Bearer x", "q": "bug"}}
        )
        assert result["args"] == {"Authorization": "[redacted]", "q": "bug"}


class TestAddOtelContext:
    def test_zeroed_ids_when_no_span(self):
        result = add_otel_context(None, "info", {"event": "test"})
        assert result["trace_id"] == "0" * 32
        assert result["span_id"] == "0" * 16

    def test_real_ids_when_span_active(self):
        from opentelemetry.sdk.trace import TracerProvider

        provider = TracerProvider()
        tracer = provider.get_tracer("test")
        with tracer.start_as_current_span("test-span"):
            result = add_otel_context(None, "info", {"event": "test"})
            assert result["trace_id"] != "0" * 32
            assert len(result["trace_id"]) == 32
            assert len(result["span_id"]) == 16
        provider.shutdown()


# ---------------------------------------------------------------------------
# configure_logging()
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_text_format_installs_console_renderer(self):
        configure_logging(fmt="text")
        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(formatter.processors[-1], structlog.dev.ConsoleRenderer)

    def test_json_format_installs_json_renderer(self):
        configure_logging(fmt="json")
        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_reconfigure_does_not_duplicate_handlers(self):
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_noise_loggers_suppressed(self):
        configure_logging()
        assert logging.getLogger("httpx").level >= logging.WARNING
        assert logging.getLogger("uvicorn.access").level >= logging.WARNING

    def test_log_level_applied(self):
        configure_logging(level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG


class TestLogDirectoryStructure:
    def test_creates_subdirectories(self, tmp_path: Path):
        configure_logging(log_root=tmp_path)
        assert (tmp_path / "orion").is_dir()
        assert (tmp_path / "uvicorn").is_dir()

    def test_app_log_file_named_after_deployment(self, tmp_path: Path):
        configure_logging(log_root=tmp_path, name="home")
        file_handlers = [
            h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(file_handlers) == 1
        assert str(file_handlers[0].baseFilename).endswith("orion/home.log")

    def test_uvicorn_log_file(self, tmp_path: Path):
        configure_logging(log_root=tmp_path, name="home")
        handlers = [
            h
            for h in logging.getLogger("uvicorn.access").handlers
            if isinstance(h, logging.FileHandler)
        ]
        assert str(handlers[0].baseFilename).endswith("uvicorn/home.log")

    def test_json_output_carries_session(self, tmp_path: Path):
        configure_logging(fmt="text", log_root=tmp_path, name="jsontest")
        set_session_context("s-42")
        logging.getLogger("orion.test").warning("hello structured world")

        content = (tmp_path / "orion" / "jsontest.log").read_text().strip()
        data = json.loads(content.splitlines()[-1])
        assert data["event"] == "hello structured world"
        assert data["session_id"] == "s-42"

    def test_extra_credentials_never_reach_the_file(self, tmp_path: Path):
        configure_logging(fmt="json", log_root=tmp_path, name="redact")
        logging.getLogger("orion.test").warning(
            "calling tool", extra={"args": {"token": "s3cret", "title": "x"}}
        )

        content = (tmp_path / "orion" / "redact.log").read_text()
        data = json.loads(content.strip().splitlines()[-1])
        assert "s3cret" not in content
        assert data["args"] == {"token": "[redacted]", "title": "x"}
