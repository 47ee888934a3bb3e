"""
Pytest configuration and fixtures for telemetry tests.

Provides an autouse fixture that restores process-global telemetry state
(install slot, root logger handlers, OTel global providers) after each test,
and in-memory exporters that stand in for collectors.
"""

import atexit
import io
import json
import logging
from typing import Dict, List

import httpx
import pytest
from opentelemetry import trace
from opentelemetry.metrics import _internal as metrics_internal
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricExporter, MetricExportResult
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.util._once import Once

from kgs_tracing.telemetry.console import TraceContextFilter
from kgs_tracing.telemetry.exporters import ExporterFactories
from kgs_tracing.telemetry.loki import LokiHandler
from kgs_tracing.telemetry.state import reset_install_slot


def installed_handlers() -> List[logging.Handler]:
    """Root logger handlers installed by Builder.build()."""
    return [
        h for h in logging.getLogger().handlers
        if isinstance(h, LokiHandler) or any(isinstance(f, TraceContextFilter) for f in h.filters)
    ]


def _reset_otel_globals() -> None:
    for provider in (trace.get_tracer_provider(), metrics_internal.get_meter_provider()):
        if isinstance(provider, (TracerProvider, MeterProvider)):
            atexit.unregister(provider.shutdown)
            provider.shutdown()

    trace._TRACER_PROVIDER_SET_ONCE = Once()
    trace._TRACER_PROVIDER = None
    metrics_internal._METER_PROVIDER_SET_ONCE = Once()
    metrics_internal._METER_PROVIDER = None


@pytest.fixture(autouse=True)
def reset_telemetry():
    """Undo everything a build installed."""
    root = logging.getLogger()
    saved_level = root.level
    yield
    for handler in installed_handlers():
        root.removeHandler(handler)
        handler.close()
    root.setLevel(saved_level)
    reset_install_slot()
    _reset_otel_globals()


@pytest.fixture
def console():
    """Stream the console sink writes to."""
    return io.StringIO()


class RecordingMetricExporter(MetricExporter):
    """Metric exporter that keeps every exported batch in memory."""

    def __init__(self):
        super().__init__()
        self.exported = []

    def export(self, metrics_data, timeout_millis: float = 10_000, **kwargs) -> MetricExportResult:
        self.exported.append(metrics_data)
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs) -> None:
        pass

    def metric_names(self) -> List[str]:
        names = []
        for metrics_data in self.exported:
            for resource_metrics in metrics_data.resource_metrics:
                for scope_metrics in resource_metrics.scope_metrics:
                    names.extend(m.name for m in scope_metrics.metrics)
        return names


class RecordingExporters:
    """In-memory exporters that remember which endpoint each pipeline was built for."""

    def __init__(self):
        self.endpoints: Dict[str, str] = {}
        self.span_exporter = InMemorySpanExporter()
        self.metric_exporter = RecordingMetricExporter()
        self.loki_payloads: List[dict] = []

    def factories(self) -> ExporterFactories:
        return ExporterFactories(span=self._span, metric=self._metric, log=self._log)

    def _span(self, endpoint: str):
        self.endpoints["tracing"] = endpoint
        return self.span_exporter

    def _metric(self, endpoint: str):
        self.endpoints["metrics"] = endpoint
        return self.metric_exporter

    def _log(self, endpoint: str, service_name: str) -> logging.Handler:
        self.endpoints["log"] = endpoint

        def handle(request: httpx.Request) -> httpx.Response:
            self.loki_payloads.append(json.loads(request.content))
            return httpx.Response(204)

        client = httpx.Client(transport=httpx.MockTransport(handle))
        return LokiHandler(endpoint, labels={"service_name": service_name}, client=client)

    def loki_lines(self) -> List[dict]:
        lines = []
        for payload in self.loki_payloads:
            for stream in payload["streams"]:
                lines.extend(json.loads(line) for _, line in stream["values"])
        return lines


@pytest.fixture
def recording_exporters():
    return RecordingExporters()
