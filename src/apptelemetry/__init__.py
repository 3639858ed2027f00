"""apptelemetry - correlated logs, traces and metrics exported over OTLP."""

from apptelemetry.config import TelemetryConfig, load_config
from apptelemetry.coordinator import (
    TelemetryCoordinator,
    get_telemetry,
    init_telemetry,
    shutdown_telemetry,
)
from apptelemetry.core.exceptions import (
    ConfigurationError,
    ExportTransportError,
    TelemetryError,
    UsageError,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ExportTransportError",
    "TelemetryConfig",
    "TelemetryCoordinator",
    "TelemetryError",
    "UsageError",
    "get_telemetry",
    "init_telemetry",
    "load_config",
    "shutdown_telemetry",
]
