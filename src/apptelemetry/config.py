"""Telemetry configuration loaded from environment variables.

Environment Variables:
    OTEL_SERVICE_NAME: Service name attached to every signal (default: sample-py-app)
    OTEL_SERVICE_VERSION: Service version (default: v1.0.0)
    OTEL_RESOURCE_ATTRIBUTES: Extra resource attributes, "k=v,k2=v2"
    OTEL_EXPORTER_OTLP_ENDPOINT: Collector endpoint (default: http://localhost:4317)
    OTEL_EXPORTER_OTLP_PROTOCOL: grpc, http/protobuf or console (default: grpc)
    OTEL_EXPORTER_OTLP_HEADERS: Extra export headers, "k=v,k2=v2"
    OTEL_EXPORTER_OTLP_TIMEOUT: Per-attempt export timeout in ms (default: 10000)
    OTEL_EXPORTER_OTLP_MAX_RETRIES: Retries per batch after the first attempt (default: 5)
    OTEL_BSP_SCHEDULE_DELAY: Log/span export interval in ms (default: 5000)
    OTEL_BSP_MAX_EXPORT_BATCH_SIZE: Signals per batch (default: 512)
    OTEL_BSP_MAX_QUEUED_BATCHES: Batches buffered before the oldest is dropped (default: 64)
    OTEL_METRIC_EXPORT_INTERVAL: Metric export window in ms (default: 30000)
    OTEL_SHUTDOWN_TIMEOUT: Final flush budget in ms (default: 5000)
    OTEL_RUNTIME_METRICS_ENABLED: Record process runtime gauges (default: true)
    LOG_LEVEL: Root log level for the console sink (default: INFO)
    FORECAST_UPSTREAM_URL: URL the forecast endpoint calls on each request
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlparse

from apptelemetry.core.exceptions import ConfigurationError
from apptelemetry.core.resource import parse_resource_attributes

DEFAULT_SERVICE_NAME = "sample-py-app"
DEFAULT_SERVICE_VERSION = "v1.0.0"
DEFAULT_COLLECTOR_ENDPOINT = "http://localhost:4317"
DEFAULT_UPSTREAM_URL = "https://jsonplaceholder.typicode.com/todos/1"

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Protocol(str, Enum):
    """Wire protocol used to reach the collector."""

    GRPC = "grpc"
    HTTP = "http"
    CONSOLE = "console"

    @classmethod
    def parse(cls, value: str) -> "Protocol":
        normalized = value.strip().lower()
        if normalized in ("http/protobuf", "http/json"):
            normalized = "http"
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigurationError(f"unsupported export protocol: {value!r}") from None


@dataclass
class TelemetryConfig:
    """Settings for the telemetry pipeline.

    Durations are in milliseconds, matching the environment variables.
    Use load_config() to build one from the environment and validate()
    before starting the pipeline.
    """

    service_name: str = DEFAULT_SERVICE_NAME
    service_version: str = DEFAULT_SERVICE_VERSION
    resource_attributes: dict[str, str] = field(default_factory=dict)
    collector_endpoint: str = DEFAULT_COLLECTOR_ENDPOINT
    protocol: Protocol = Protocol.GRPC
    headers: dict[str, str] = field(default_factory=dict)
    export_interval_ms: int = 5000
    metric_export_interval_ms: int = 30000
    export_timeout_ms: int = 10000
    max_retries: int = 5
    max_batch_size: int = 512
    max_queued_batches: int = 64
    shutdown_timeout_ms: int = 5000
    runtime_metrics: bool = True
    log_level: str = "INFO"
    upstream_url: str = DEFAULT_UPSTREAM_URL
    upstream_timeout_ms: int = 5000

    def validate(self) -> "TelemetryConfig":
        """Check the settings.

        Returns:
            self, so calls can be chained.

        Raises:
            ConfigurationError: On the first invalid setting found.
        """
        if not self.service_name or not self.service_name.strip():
            raise ConfigurationError("service name must not be empty")
        if self.protocol is not Protocol.CONSOLE:
            parsed = urlparse(self.collector_endpoint)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                raise ConfigurationError(
                    f"invalid collector endpoint: {self.collector_endpoint!r}"
                )
        for name in (
            "export_interval_ms",
            "metric_export_interval_ms",
            "export_timeout_ms",
            "max_batch_size",
            "max_queued_batches",
            "shutdown_timeout_ms",
            "upstream_timeout_ms",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must not be negative")
        if self.log_level.upper() not in _VALID_LOG_LEVELS:
            raise ConfigurationError(f"invalid log level: {self.log_level!r}")
        return self


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _bool_env(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_config(env: Mapping[str, str] | None = None) -> TelemetryConfig:
    """Build a validated TelemetryConfig from environment variables.

    Args:
        env: Mapping to read from. Defaults to os.environ.

    Returns:
        A validated TelemetryConfig.

    Raises:
        ConfigurationError: If any variable is malformed or invalid.

    Example:
        >>> config = load_config({"OTEL_SERVICE_NAME": "svc-A"})
        >>> config.service_name
        'svc-A'
    """
    if env is None:
        env = os.environ
    config = TelemetryConfig(
        service_name=env.get("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME),
        service_version=env.get("OTEL_SERVICE_VERSION", DEFAULT_SERVICE_VERSION),
        resource_attributes=parse_resource_attributes(
            env.get("OTEL_RESOURCE_ATTRIBUTES", "")
        ),
        collector_endpoint=env.get(
            "OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_COLLECTOR_ENDPOINT
        ),
        protocol=Protocol.parse(env.get("OTEL_EXPORTER_OTLP_PROTOCOL", "grpc")),
        headers=parse_resource_attributes(env.get("OTEL_EXPORTER_OTLP_HEADERS", "")),
        export_interval_ms=_int_env(env, "OTEL_BSP_SCHEDULE_DELAY", 5000),
        metric_export_interval_ms=_int_env(env, "OTEL_METRIC_EXPORT_INTERVAL", 30000),
        export_timeout_ms=_int_env(env, "OTEL_EXPORTER_OTLP_TIMEOUT", 10000),
        max_retries=_int_env(env, "OTEL_EXPORTER_OTLP_MAX_RETRIES", 5),
        max_batch_size=_int_env(env, "OTEL_BSP_MAX_EXPORT_BATCH_SIZE", 512),
        max_queued_batches=_int_env(env, "OTEL_BSP_MAX_QUEUED_BATCHES", 64),
        shutdown_timeout_ms=_int_env(env, "OTEL_SHUTDOWN_TIMEOUT", 5000),
        runtime_metrics=_bool_env(env, "OTEL_RUNTIME_METRICS_ENABLED", True),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
        upstream_url=env.get("FORECAST_UPSTREAM_URL", DEFAULT_UPSTREAM_URL),
        upstream_timeout_ms=_int_env(env, "FORECAST_UPSTREAM_TIMEOUT", 5000),
    )
    return config.validate()
