"""
Tests for TelemetryManager helpers before and after installation.
"""

import pytest
import time
from opentelemetry.trace import StatusCode


class TestTelemetryManager:
    """Tests for TelemetryManager class without installed providers."""

    def test_manager_creation(self):
        """Test creating a TelemetryManager."""
        from kgs_tracing import TelemetryManager

        manager = TelemetryManager("orders-service")
        assert manager.service_name == "orders-service"

    def test_tracer_and_meter_available(self):
        """Test that a tracer and a meter are always available."""
        from kgs_tracing import TelemetryManager

        manager = TelemetryManager("orders-service")
        assert manager._tracer is not None
        assert manager._meter is not None

    def test_span_is_noop_before_build(self):
        """Test span context manager before any build."""
        from kgs_tracing import TelemetryManager

        manager = TelemetryManager("orders-service")
        with manager.span("test-operation") as span:
            assert span is not None
            assert span.is_recording() is False
        assert manager.current_trace_id() is None

    def test_record_request(self):
        """Test record_request doesn't raise errors."""
        from kgs_tracing import TelemetryManager

        manager = TelemetryManager("orders-service")
        manager.record_request("create_order", 100.0, success=True)
        manager.record_request("create_order", 250.0, success=False)


class TestRecordedSpans:
    """Tests for spans with an installed tracing pipeline."""

    @pytest.fixture
    def installed(self, console, recording_exporters):
        from kgs_tracing import Builder

        state = Builder("orders-service").enable_tracing("localhost:4317").build(
            exporters=recording_exporters.factories(), stream=console
        )
        return state, recording_exporters.span_exporter

    def test_span_attributes_and_status(self, installed):
        """Test attributes and OK status on success."""
        from kgs_tracing import TelemetryManager

        state, exporter = installed
        manager = TelemetryManager("orders-service")
        with manager.span("create_order", order_id="o-1", skipped=None):
            pass
        state.tracer_provider.force_flush()

        span = exporter.get_finished_spans()[0]
        assert span.attributes["service.name"] == "orders-service"
        assert span.attributes["order_id"] == "o-1"
        assert "skipped" not in span.attributes
        assert span.status.status_code == StatusCode.OK

    def test_span_records_exception(self, installed):
        """Test ERROR status and exception event when the block raises."""
        from kgs_tracing import TelemetryManager

        state, exporter = installed
        manager = TelemetryManager("orders-service")
        with pytest.raises(ValueError):
            with manager.span("create_order"):
                raise ValueError("out of stock")
        state.tracer_provider.force_flush()

        span = exporter.get_finished_spans()[0]
        assert span.status.status_code == StatusCode.ERROR
        assert span.status.description == "out of stock"
        assert [e.name for e in span.events] == ["exception"]

    def test_context_round_trip_across_services(self, installed):
        """Test that an extracted context parents the downstream span."""
        from kgs_tracing import TelemetryManager

        state, exporter = installed
        upstream = TelemetryManager("orders-service")
        downstream = TelemetryManager("billing")

        with upstream.span("call-billing"):
            upstream_trace_id = upstream.current_trace_id()
            headers = TelemetryManager.inject_context({})

        parent = TelemetryManager.extract_context(headers)
        with downstream.span("charge", context=parent):
            downstream_trace_id = downstream.current_trace_id()

        assert downstream_trace_id == upstream_trace_id


class TestContextPropagation:
    """Tests for trace context propagation without an active span."""

    def test_inject_context(self):
        """Test context injection into headers."""
        from kgs_tracing import TelemetryManager

        carrier: dict = {}
        result = TelemetryManager.inject_context(carrier)
        assert result is carrier

    def test_extract_context(self):
        """Test context extraction from headers."""
        from kgs_tracing import TelemetryManager

        context = TelemetryManager.extract_context({})
        assert context is not None


class TestTimedContextManager:
    """Tests for timed context manager."""

    def test_timed_operation(self):
        """Test timed context manager tracks duration."""
        from kgs_tracing import timed

        with timed() as result:
            time.sleep(0.01)

        assert "duration_ms" in result
        assert result["duration_ms"] >= 10
