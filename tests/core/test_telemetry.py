"""Tests for orion.core.telemetry."""

from __future__ import annotations

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from orion.core import telemetry
from orion.core.telemetry import action_span, init_telemetry

pytestmark = pytest.mark.unit


@pytest.fixture
def exporter(monkeypatch: pytest.MonkeyPatch) -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(
        telemetry.trace, "get_tracer", lambda name, *args, **kwargs: provider.get_tracer(name)
    )
    return exporter


class TestInitTelemetry:
    def test_noop_without_endpoint(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
        tracer = init_telemetry("orion-test")
        assert tracer is not None
        assert telemetry._tracer_provider_installed is False


class TestActionSpan:
    def test_records_tool_and_risk(self, exporter):
        with action_span("fs.read", risk="low") as span:
            assert trace.get_current_span() is span

        [finished] = exporter.get_finished_spans()
        assert finished.name == "orion.action"
        assert finished.attributes["orion.tool"] == "fs.read"
        assert finished.attributes["orion.risk"] == "low"

    def test_records_exception(self, exporter):
        with pytest.raises(RuntimeError):
            with action_span("web.fetch", risk="medium"):
                raise RuntimeError("boom")

        [finished] = exporter.get_finished_spans()
        assert finished.status.status_code is trace.StatusCode.ERROR
        assert finished.events[0].name == "exception"

    def test_context_restored_after_exit(self, exporter):
        before = trace.get_current_span()
        with action_span("fs.read", risk="low"):
            pass
        assert trace.get_current_span() is before
