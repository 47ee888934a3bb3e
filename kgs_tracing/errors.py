"""Errors raised while configuring and installing telemetry."""


class TelemetryError(Exception):
    """Base class for all telemetry initialization errors."""


class ConfigError(TelemetryError):
    """Invalid builder configuration (empty service name, empty endpoint, use after build)."""


class AlreadyInstalledError(TelemetryError):
    """Global telemetry (or a foreign global provider) is already installed in this process.

    The first installation stays active and unchanged.
    """


class ExporterConstructionError(TelemetryError):
    """An exporter pipeline could not be constructed.

    Stages that completed before the failing one stay installed; fix the
    configuration and restart the process rather than retrying in place.
    """

    def __init__(self, pipeline: str, endpoint: str, reason: str):
        self.pipeline = pipeline
        self.endpoint = endpoint
        self.reason = reason
        super().__init__(f"Failed to construct {pipeline} exporter for '{endpoint}': {reason}")


class SystemInfoWarning(UserWarning):
    """Host/process metadata could not be collected; resource attributes are reduced."""
