"""
Exporter constructors for the tracing, metrics and log pipelines.

Endpoints are validated here, at construction time, so that a malformed
endpoint fails the build instead of surfacing later as silent export
failures.
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Tuple
from urllib.parse import urlparse

from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics.export import MetricExporter
from opentelemetry.sdk.trace.export import SpanExporter

from kgs_tracing.errors import ExporterConstructionError
from kgs_tracing.telemetry.loki import LokiHandler

logger = logging.getLogger(__name__)

METRIC_EXPORT_TIMEOUT_SECONDS = 3

TRACES = "tracing"
METRICS = "metrics"
LOGS = "log"


def _parse_endpoint(pipeline: str, endpoint: str, require_scheme: bool = False) -> Tuple[str, bool]:
    """Validate a collector endpoint.

    Accepts "host:port" or "http(s)://host[:port]".

    Returns:
        Tuple of (endpoint, insecure)
    """
    value = endpoint.strip()
    if not value:
        raise ExporterConstructionError(pipeline, endpoint, "endpoint is empty")
    if any(c.isspace() for c in value):
        raise ExporterConstructionError(pipeline, endpoint, "endpoint contains whitespace")

    has_scheme = "://" in value
    if require_scheme and not has_scheme:
        raise ExporterConstructionError(pipeline, endpoint, "expected an http(s):// URL")

    parsed = urlparse(value if has_scheme else f"//{value}")
    if has_scheme and parsed.scheme not in ("http", "https"):
        raise ExporterConstructionError(pipeline, endpoint, f"unsupported scheme '{parsed.scheme}'")
    if not parsed.hostname:
        raise ExporterConstructionError(pipeline, endpoint, "missing host")
    try:
        parsed.port
    except ValueError as e:
        raise ExporterConstructionError(pipeline, endpoint, f"invalid port ({e})") from e

    return value, parsed.scheme != "https"


def create_span_exporter(endpoint: str) -> SpanExporter:
    """Create an OTLP gRPC span exporter for the given collector endpoint."""
    target, insecure = _parse_endpoint(TRACES, endpoint)
    logger.debug(f"Creating OTLP span exporter: {target} (insecure={insecure})")
    try:
        return OTLPSpanExporter(endpoint=target, insecure=insecure)
    except Exception as e:
        raise ExporterConstructionError(TRACES, endpoint, str(e)) from e


def create_metric_exporter(endpoint: str) -> MetricExporter:
    """Create an OTLP gRPC metric exporter for the given collector endpoint."""
    target, insecure = _parse_endpoint(METRICS, endpoint)
    logger.debug(f"Creating OTLP metric exporter: {target} (insecure={insecure})")
    try:
        return OTLPMetricExporter(
            endpoint=target, insecure=insecure, timeout=METRIC_EXPORT_TIMEOUT_SECONDS
        )
    except Exception as e:
        raise ExporterConstructionError(METRICS, endpoint, str(e)) from e


def create_log_handler(endpoint: str, service_name: str) -> logging.Handler:
    """Create and start a Loki handler labelled with the service name."""
    target, _ = _parse_endpoint(LOGS, endpoint, require_scheme=True)
    logger.debug(f"Creating Loki handler: {target}")
    try:
        handler = LokiHandler(
            target,
            labels={"service_name": service_name},
            extra_fields={"process_id": str(os.getpid())},
        )
    except Exception as e:
        raise ExporterConstructionError(LOGS, endpoint, str(e)) from e
    handler.start()
    return handler


@dataclass(frozen=True)
class ExporterFactories:
    """Exporter constructors used by the builder, one per pipeline."""

    span: Callable[[str], SpanExporter] = create_span_exporter
    metric: Callable[[str], MetricExporter] = create_metric_exporter
    log: Callable[[str, str], logging.Handler] = create_log_handler
