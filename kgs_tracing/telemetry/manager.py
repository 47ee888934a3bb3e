"""
Span, propagation and request-metric helpers for application code.

These work before and after Builder.build(): before, the OTel API hands
out no-op tracers and meters; after, everything is routed through the
installed providers.
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace, metrics
from opentelemetry.context import Context
from opentelemetry.propagate import inject, extract
from opentelemetry.trace import Span, SpanKind, Status, StatusCode

ATTR_SERVICE_NAME = "service.name"
ATTR_OPERATION = "operation"


class TelemetryManager:
    """Lightweight helper for creating spans and recording request metrics.

    Each component should create one instance. The underlying providers are
    process-global.

    Example:
        otel = TelemetryManager("orders-service")
        with otel.span("create_order", order_id="o-1") as span:
            # do work
            span.set_attribute("custom", "value")
    """

    def __init__(self, service_name: str):
        """Initialize manager with service context.

        Args:
            service_name: Name of the service, used as instrumentation scope
        """
        self.service_name = service_name
        self._tracer = trace.get_tracer(f"kgs_tracing.{service_name}")
        self._meter = metrics.get_meter(f"kgs_tracing.{service_name}")

        # Lazily initialized metrics
        self._request_counter: Optional[metrics.Counter] = None
        self._request_duration: Optional[metrics.Histogram] = None

    def _ensure_metrics(self) -> None:
        if self._request_counter is not None:
            return

        self._request_counter = self._meter.create_counter(
            "requests", description="Request count", unit="1"
        )
        self._request_duration = self._meter.create_histogram(
            "request.duration", description="Request duration", unit="ms"
        )

    @contextmanager
    def span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        context: Optional[Context] = None,
        **attributes: Any,
    ) -> Iterator[Span]:
        """Create a span with automatic end and status handling.

        Args:
            name: Span name
            kind: Span kind (INTERNAL, CLIENT, SERVER)
            context: Parent context, e.g. from extract_context(); current context when omitted
            **attributes: Additional span attributes, None values are dropped

        Yields:
            The active span
        """
        attrs = {ATTR_SERVICE_NAME: self.service_name}
        attrs.update({k: v for k, v in attributes.items() if v is not None})

        with self._tracer.start_as_current_span(
            name, context=context, kind=kind, attributes=attrs,
            record_exception=False, set_status_on_exception=False,
        ) as span:
            try:
                yield span
                span.set_status(Status(StatusCode.OK))
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise

    def record_request(self, operation: str, duration_ms: float, success: bool = True) -> None:
        """Record request count and duration."""
        self._ensure_metrics()
        labels = {
            ATTR_SERVICE_NAME: self.service_name,
            ATTR_OPERATION: operation,
            "success": str(success).lower(),
        }
        if self._request_counter:
            self._request_counter.add(1, labels)
        if self._request_duration:
            self._request_duration.record(duration_ms, labels)

    @staticmethod
    def inject_context(carrier: Dict[str, str]) -> Dict[str, str]:
        """Inject the current trace context into outgoing request headers/metadata."""
        inject(carrier)
        return carrier

    @staticmethod
    def extract_context(carrier: Dict[str, str]) -> Context:
        """Extract the caller's trace context from incoming request headers/metadata."""
        return extract(carrier)

    @staticmethod
    def current_trace_id() -> Optional[str]:
        """Hex trace id of the current span, or None outside a recorded trace."""
        span_context = trace.get_current_span().get_span_context()
        if not span_context.is_valid:
            return None
        return format(span_context.trace_id, "032x")


@contextmanager
def timed() -> Iterator[Dict[str, float]]:
    """Context manager for timing operations.

    Yields a dict that will contain 'duration_ms' after the block.
    """
    result: Dict[str, float] = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["duration_ms"] = (time.perf_counter() - start) * 1000
