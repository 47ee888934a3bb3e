"""
Process-wide telemetry state.

The process has a single install slot. It is claimed with a short
check-and-set at the start of a build and is never released, so only the
first build in a process can install anything. A successful build then
publishes an immutable GlobalTelemetryState snapshot.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

from kgs_tracing.enums import LogLevel
from kgs_tracing.errors import AlreadyInstalledError

logger = logging.getLogger(__name__)

_slot_lock = threading.Lock()
_claimed_by: Optional[str] = None
_state: Optional["GlobalTelemetryState"] = None


@dataclass(frozen=True)
class GlobalTelemetryState:
    """Snapshot of everything a successful build installed."""

    service_name: str
    log_level: LogLevel
    resource: Resource
    handlers: Tuple[logging.Handler, ...]
    tracer_provider: Optional[TracerProvider] = None
    meter_provider: Optional[MeterProvider] = None

    @property
    def tracing_enabled(self) -> bool:
        return self.tracer_provider is not None

    @property
    def metrics_enabled(self) -> bool:
        return self.meter_provider is not None

    @property
    def remote_log_enabled(self) -> bool:
        return len(self.handlers) > 1

    def flush(self) -> None:
        """Export everything buffered so far without stopping any pipeline.

        Teardown at process exit is registered by each build stage as it
        is installed and does not go through the state.
        """
        if self.tracer_provider is not None:
            self.tracer_provider.force_flush()
        if self.meter_provider is not None:
            self.meter_provider.force_flush()
        for handler in self.handlers:
            handler.flush()


def claim_install_slot(service_name: str) -> None:
    """Claim the process-wide install slot.

    Raises:
        AlreadyInstalledError: If any build in this process claimed it first
    """
    global _claimed_by
    with _slot_lock:
        if _claimed_by is not None:
            raise AlreadyInstalledError(f"Telemetry already installed for service '{_claimed_by}'")
        _claimed_by = service_name


def publish_state(state: GlobalTelemetryState) -> None:
    """Publish the installed state."""
    global _state
    _state = state


def get_state() -> Optional[GlobalTelemetryState]:
    """Return the installed telemetry state, or None before a successful build."""
    return _state


def is_installed() -> bool:
    """Check if telemetry has been installed in this process."""
    return _state is not None


def reset_install_slot() -> None:
    """Release the install slot and forget the published state.

    Intended for test suites only; providers and handlers that were installed
    are left in place and must be torn down by the caller.
    """
    global _claimed_by, _state
    with _slot_lock:
        _claimed_by = None
        _state = None
