"""
Process-wide telemetry initialization.

A single Builder(...).build() call at startup installs a console log sink
and, when enabled, OTLP tracing, OTLP metrics and Loki log shipping.
"""

from kgs_tracing.telemetry.builder import Builder
from kgs_tracing.telemetry.state import GlobalTelemetryState, get_state, is_installed
from kgs_tracing.telemetry.exporters import ExporterFactories
from kgs_tracing.telemetry.loki import LokiHandler
from kgs_tracing.telemetry.base_metrics import register_base_metrics
from kgs_tracing.telemetry.manager import TelemetryManager, timed

__all__ = [
    "Builder",
    "GlobalTelemetryState",
    "get_state",
    "is_installed",
    "ExporterFactories",
    "LokiHandler",
    "register_base_metrics",
    "TelemetryManager",
    "timed",
]
