"""Telemetry configuration from environment variables."""

from typing import Optional

from pydantic_settings import BaseSettings


class TelemetrySettings(BaseSettings):
    """Initializer configuration from environment variables.

    Endpoint variables follow the standard OTEL_* names; an unset endpoint
    leaves the corresponding pipeline disabled.
    """

    otel_service_name: Optional[str] = None
    log_level: str = "INFO"

    otel_exporter_otlp_traces_endpoint: Optional[str] = None
    otel_exporter_otlp_metrics_endpoint: Optional[str] = None
    loki_url: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False
