"""
Telemetry builder.

Accumulates configuration through chained calls, then installs logging,
tracing, metrics and log shipping for the whole process in a single
build() call.

Example:
    from kgs_tracing import Builder, LogLevel

    Builder("orders-service") \\
        .set_log_level(LogLevel.DEBUG) \\
        .enable_tracing("http://localhost:4317") \\
        .enable_metrics("http://localhost:4317") \\
        .enable_log("http://localhost:3100") \\
        .build()
"""

import atexit
import logging
from typing import IO, Any, Callable, Optional, Union

from opentelemetry import trace, metrics
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from kgs_tracing.enums import LogLevel
from kgs_tracing.errors import AlreadyInstalledError, ConfigError, ExporterConstructionError
from kgs_tracing.settings import TelemetrySettings
from kgs_tracing.telemetry.console import create_console_handler
from kgs_tracing.telemetry.exporters import ExporterFactories, TRACES, METRICS, LOGS
from kgs_tracing.telemetry.state import GlobalTelemetryState, claim_install_slot, publish_state
from kgs_tracing.telemetry.system_info import build_resource

logger = logging.getLogger(__name__)

METRIC_EXPORT_INTERVAL_MILLIS = 3000
METRIC_EXPORT_TIMEOUT_MILLIS = 10000


class Builder:
    """Fluent telemetry configuration with a single side-effecting build().

    Args:
        service_name: Name identifying this process in all emitted telemetry

    Raises:
        ConfigError: If service_name is empty or whitespace-only
    """

    def __init__(self, service_name: str):
        if not isinstance(service_name, str) or not service_name.strip():
            raise ConfigError("service_name must be a non-empty string")

        self._service_name = service_name
        self._log_level = LogLevel.INFO
        self._tracing_endpoint: Optional[str] = None
        self._metrics_endpoint: Optional[str] = None
        self._log_endpoint: Optional[str] = None
        self._built = False

    @property
    def service_name(self) -> str:
        return self._service_name

    @property
    def log_level(self) -> LogLevel:
        return self._log_level

    @property
    def tracing_endpoint(self) -> Optional[str]:
        return self._tracing_endpoint

    @property
    def metrics_endpoint(self) -> Optional[str]:
        return self._metrics_endpoint

    @property
    def log_endpoint(self) -> Optional[str]:
        return self._log_endpoint

    @classmethod
    def new(cls, service_name: str) -> "Builder":
        return cls(service_name)

    @classmethod
    def from_env(
        cls,
        default_service_name: Optional[str] = None,
        settings: Optional[TelemetrySettings] = None,
    ) -> "Builder":
        """Create a builder from LOG_LEVEL, OTEL_* and LOKI_URL environment variables.

        Args:
            default_service_name: Used when OTEL_SERVICE_NAME is not set
            settings: Preloaded settings, read from the environment when omitted
        """
        settings = settings or TelemetrySettings()
        builder = cls(settings.otel_service_name or default_service_name or "")
        builder.set_log_level(settings.log_level)
        if settings.otel_exporter_otlp_traces_endpoint:
            builder.enable_tracing(settings.otel_exporter_otlp_traces_endpoint)
        if settings.otel_exporter_otlp_metrics_endpoint:
            builder.enable_metrics(settings.otel_exporter_otlp_metrics_endpoint)
        if settings.loki_url:
            builder.enable_log(settings.loki_url)
        return builder

    def set_log_level(self, level: Union[LogLevel, str]) -> "Builder":
        """Set the minimum level for the console sink and log shipping (default INFO)."""
        self._ensure_configurable()
        try:
            self._log_level = LogLevel.parse(level)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        return self

    def enable_tracing(self, endpoint: str) -> "Builder":
        """Export spans over OTLP to the given collector endpoint."""
        self._ensure_configurable()
        self._tracing_endpoint = self._check_endpoint(TRACES, endpoint)
        return self

    def enable_metrics(self, endpoint: str) -> "Builder":
        """Periodically push metrics over OTLP to the given collector endpoint."""
        self._ensure_configurable()
        self._metrics_endpoint = self._check_endpoint(METRICS, endpoint)
        return self

    def enable_log(self, endpoint: str) -> "Builder":
        """Ship log records to the Loki instance at the given URL."""
        self._ensure_configurable()
        self._log_endpoint = self._check_endpoint(LOGS, endpoint)
        return self

    def build(
        self,
        exporters: Optional[ExporterFactories] = None,
        stream: Optional[IO[str]] = None,
    ) -> GlobalTelemetryState:
        """Install telemetry for the whole process.

        Stages run in a fixed order so that logs emitted by later stages
        already reach the console: console sink, tracing, metrics, log
        shipping. Each stage registers its own teardown with atexit as soon
        as it is installed, so stages that complete before a failing one stay
        active and are still flushed at process exit.

        Args:
            exporters: Exporter constructors, OTLP and Loki when omitted
            stream: Console output stream, stderr when omitted

        Returns:
            The installed GlobalTelemetryState

        Raises:
            AlreadyInstalledError: If telemetry was already installed in this process
            ExporterConstructionError: If an exporter cannot be constructed
        """
        self._built = True
        exporters = exporters or ExporterFactories()
        claim_install_slot(self.service_name)

        level = self.log_level.to_logging_level()
        root = logging.getLogger()

        # Root logger handlers are flushed and closed by logging.shutdown at exit
        console = create_console_handler(level, stream)
        root.setLevel(level)
        root.addHandler(console)
        handlers = [console]

        resource = build_resource(self.service_name)

        tracer_provider = None
        if self.tracing_endpoint:
            tracer_provider = self._init_tracing(exporters, resource)

        meter_provider = None
        if self.metrics_endpoint:
            meter_provider = self._init_metrics(exporters, resource)

        if self.log_endpoint:
            loki_handler = self._construct(
                LOGS, self.log_endpoint, exporters.log, self.log_endpoint, self.service_name
            )
            loki_handler.setLevel(level)
            root.addHandler(loki_handler)
            handlers.append(loki_handler)
            logger.info(f"Log shipping enabled: {self.log_endpoint}")

        state = GlobalTelemetryState(
            service_name=self.service_name,
            log_level=self.log_level,
            resource=resource,
            handlers=tuple(handlers),
            tracer_provider=tracer_provider,
            meter_provider=meter_provider,
        )
        publish_state(state)
        logger.info(f"Telemetry installed for {self.service_name} (log level: {self.log_level})")
        return state

    def _init_tracing(self, exporters: ExporterFactories, resource: Resource) -> TracerProvider:
        span_exporter = self._construct(
            TRACES, self.tracing_endpoint, exporters.span, self.tracing_endpoint
        )

        set_global_textmap(
            CompositePropagator([TraceContextTextMapPropagator(), W3CBaggagePropagator()])
        )

        tracer_provider = TracerProvider(resource=resource, shutdown_on_exit=False)
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
        trace.set_tracer_provider(tracer_provider)
        if trace.get_tracer_provider() is not tracer_provider:
            tracer_provider.shutdown()
            raise AlreadyInstalledError("A global TracerProvider was installed outside kgs_tracing")
        atexit.register(tracer_provider.shutdown)

        logger.info(f"Tracing enabled: {self.tracing_endpoint}")
        return tracer_provider

    def _init_metrics(self, exporters: ExporterFactories, resource: Resource) -> MeterProvider:
        metric_exporter = self._construct(
            METRICS, self.metrics_endpoint, exporters.metric, self.metrics_endpoint
        )

        reader = PeriodicExportingMetricReader(
            metric_exporter,
            export_interval_millis=METRIC_EXPORT_INTERVAL_MILLIS,
            export_timeout_millis=METRIC_EXPORT_TIMEOUT_MILLIS,
        )
        meter_provider = MeterProvider(
            resource=resource, metric_readers=[reader], shutdown_on_exit=False
        )
        metrics.set_meter_provider(meter_provider)
        if metrics.get_meter_provider() is not meter_provider:
            meter_provider.shutdown()
            raise AlreadyInstalledError("A global MeterProvider was installed outside kgs_tracing")
        atexit.register(meter_provider.shutdown)

        logger.info(f"Metrics enabled: {self.metrics_endpoint}")
        return meter_provider

    @staticmethod
    def _construct(pipeline: str, endpoint: str, factory: Callable[..., Any], *args: Any) -> Any:
        try:
            return factory(*args)
        except ExporterConstructionError:
            raise
        except Exception as e:
            raise ExporterConstructionError(pipeline, endpoint, str(e)) from e

    def _ensure_configurable(self) -> None:
        if self._built:
            raise ConfigError("Builder cannot be modified after build()")

    @staticmethod
    def _check_endpoint(pipeline: str, endpoint: str) -> str:
        if not isinstance(endpoint, str) or not endpoint.strip():
            raise ConfigError(f"{pipeline} endpoint must be a non-empty string")
        return endpoint

    def __repr__(self) -> str:
        return (
            f"Builder(service_name={self.service_name!r}, log_level={self.log_level}, "
            f"tracing_endpoint={self.tracing_endpoint!r}, "
            f"metrics_endpoint={self.metrics_endpoint!r}, log_endpoint={self.log_endpoint!r})"
        )

