"""
kgs-tracing: one-call tracing, metrics and log export setup for services.
"""

from kgs_tracing.enums import LogLevel
from kgs_tracing.errors import (
    TelemetryError,
    ConfigError,
    AlreadyInstalledError,
    ExporterConstructionError,
    SystemInfoWarning,
)
from kgs_tracing.settings import TelemetrySettings
from kgs_tracing.telemetry import (
    Builder,
    GlobalTelemetryState,
    get_state,
    is_installed,
    ExporterFactories,
    LokiHandler,
    register_base_metrics,
    TelemetryManager,
    timed,
)

__version__ = "0.1.0"

__all__ = [
    "LogLevel",
    "TelemetryError",
    "ConfigError",
    "AlreadyInstalledError",
    "ExporterConstructionError",
    "SystemInfoWarning",
    "TelemetrySettings",
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
