"""Best-effort host and process metadata for resource attributes."""

import logging
import os
import platform
import socket
import warnings
from typing import Any, Dict

from opentelemetry.sdk.resources import Resource, SERVICE_NAME

from kgs_tracing.errors import SystemInfoWarning

logger = logging.getLogger(__name__)


def collect_system_info() -> Dict[str, Any]:
    """Collect host/process attributes using OTel semantic convention keys.

    Raises:
        OSError: If the host cannot be queried
    """
    uname = platform.uname()
    return {
        "host.name": socket.gethostname(),
        "host.arch": uname.machine,
        "os.type": uname.system.lower(),
        "os.version": uname.release,
        "process.pid": os.getpid(),
        "process.runtime.name": platform.python_implementation().lower(),
        "process.runtime.version": platform.python_version(),
    }


def build_resource(service_name: str) -> Resource:
    """Create the OTel resource identifying this process.

    Missing system info degrades to a resource carrying only the service name.
    """
    attributes: Dict[str, Any] = {}
    try:
        attributes.update(collect_system_info())
    except OSError as e:
        message = f"System info unavailable, resource attributes reduced: {e}"
        warnings.warn(message, SystemInfoWarning, stacklevel=2)
        logger.warning(message)

    attributes[SERVICE_NAME] = service_name
    return Resource.create(attributes)
