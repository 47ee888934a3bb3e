"""Baseline CPU and RAM gauges for every service."""

import logging
from typing import Iterable, Optional

import psutil
from opentelemetry import metrics
from opentelemetry.metrics import CallbackOptions, MeterProvider, Observation

logger = logging.getLogger(__name__)

METER_NAME = "kgs_tracing.base_metrics"


def cpu_usage_percent() -> Optional[float]:
    """System-wide CPU utilization since the previous reading, in percent."""
    try:
        return psutil.cpu_percent(interval=None)
    except (OSError, psutil.Error):
        return None


def ram_usage_bytes() -> Optional[int]:
    """Memory currently in use system-wide, in bytes."""
    try:
        return psutil.virtual_memory().used
    except (OSError, psutil.Error):
        return None


def register_base_metrics(service_name: str, meter_provider: Optional[MeterProvider] = None) -> None:
    """Register cpu_usage and ram_usage observable gauges.

    Readings are current values taken on each collection cycle of the
    metrics pipeline; readings that cannot be taken are skipped.

    Args:
        service_name: Value of the service.name attribute on every observation
        meter_provider: Provider to register with, the global one when omitted
    """
    meter = metrics.get_meter(METER_NAME, meter_provider=meter_provider)
    attributes = {"service.name": service_name}

    # Primes the counters so the first collection reports a real interval
    cpu_usage_percent()

    def observe_cpu(options: CallbackOptions) -> Iterable[Observation]:
        value = cpu_usage_percent()
        return [] if value is None else [Observation(value, attributes)]

    def observe_ram(options: CallbackOptions) -> Iterable[Observation]:
        value = ram_usage_bytes()
        return [] if value is None else [Observation(value, attributes)]

    meter.create_observable_gauge(
        "cpu_usage", callbacks=[observe_cpu], unit="percent", description="CPU usage percentage"
    )
    meter.create_observable_gauge(
        "ram_usage", callbacks=[observe_ram], unit="By", description="RAM usage in bytes"
    )
    logger.debug(f"Base metrics registered for {service_name}")
