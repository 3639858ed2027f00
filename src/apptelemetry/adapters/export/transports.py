"""Transports that deliver encoded batches to an OTLP collector.

Each transport implements TransportPort: export() either returns after the
collector accepted the batch or raises ExportTransportError, flagged as
retryable or not according to the OTLP retry rules.
"""

import sys
import threading
from typing import TextIO
from urllib.parse import urlparse

import grpc
import httpx
from opentelemetry.proto.collector.logs.v1.logs_service_pb2_grpc import (
    LogsServiceStub,
)
from opentelemetry.proto.collector.metrics.v1.metrics_service_pb2_grpc import (
    MetricsServiceStub,
)
from opentelemetry.proto.collector.trace.v1.trace_service_pb2_grpc import (
    TraceServiceStub,
)

from apptelemetry.config import Protocol, TelemetryConfig
from apptelemetry.core.encoding import ndjson
from apptelemetry.core.encoding.otlp import encode_batch
from apptelemetry.core.exceptions import ConfigurationError, ExportTransportError
from apptelemetry.core.models import ExportBatch, SignalKind

_RETRYABLE_GRPC_CODES = frozenset(
    {
        grpc.StatusCode.CANCELLED,
        grpc.StatusCode.DEADLINE_EXCEEDED,
        grpc.StatusCode.RESOURCE_EXHAUSTED,
        grpc.StatusCode.ABORTED,
        grpc.StatusCode.OUT_OF_RANGE,
        grpc.StatusCode.UNAVAILABLE,
        grpc.StatusCode.DATA_LOSS,
    }
)

_RETRYABLE_HTTP_STATUS = frozenset({429, 502, 503, 504})

HTTP_PATHS = {
    SignalKind.SPANS: "/v1/traces",
    SignalKind.LOGS: "/v1/logs",
    SignalKind.METRICS: "/v1/metrics",
}


class GrpcTransport:
    """OTLP/gRPC transport using the collector service stubs.

    Args:
        endpoint: Collector URL, e.g. "http://localhost:4317". An "https"
            scheme selects a TLS channel.
        headers: Extra metadata sent with every export call.
    """

    def __init__(self, endpoint: str, headers: dict[str, str] | None = None) -> None:
        parsed = urlparse(endpoint)
        target = parsed.netloc or endpoint
        if parsed.scheme == "https":
            self._channel = grpc.secure_channel(target, grpc.ssl_channel_credentials())
        else:
            self._channel = grpc.insecure_channel(target)
        self.endpoint = endpoint
        self._metadata = tuple((k.lower(), v) for k, v in (headers or {}).items())
        self._calls = {
            SignalKind.SPANS: TraceServiceStub(self._channel).Export,
            SignalKind.LOGS: LogsServiceStub(self._channel).Export,
            SignalKind.METRICS: MetricsServiceStub(self._channel).Export,
        }

    def export(self, batch: ExportBatch, timeout: float) -> None:
        request = encode_batch(batch)
        try:
            self._calls[batch.kind](
                request, timeout=timeout, metadata=self._metadata or None
            )
        except grpc.RpcError as exc:
            code = exc.code() if isinstance(exc, grpc.Call) else None
            raise ExportTransportError(
                f"gRPC export of {batch.kind.value} to {self.endpoint} failed: "
                f"{code.name if code else exc}",
                retryable=code is None or code in _RETRYABLE_GRPC_CODES,
            ) from exc

    def close(self) -> None:
        self._channel.close()


class HttpTransport:
    """OTLP/HTTP transport posting binary protobuf with httpx.

    Args:
        endpoint: Collector base URL, e.g. "http://localhost:4318". Signal
            paths (/v1/traces, /v1/logs, /v1/metrics) are appended.
        headers: Extra headers sent with every request.
        client: Optional preconfigured httpx.Client (used in tests).
    """

    def __init__(
        self,
        endpoint: str,
        headers: dict[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self._headers = {"Content-Type": "application/x-protobuf", **(headers or {})}
        self._client = client or httpx.Client()

    def export(self, batch: ExportBatch, timeout: float) -> None:
        url = f"{self.endpoint}{HTTP_PATHS[batch.kind]}"
        body = encode_batch(batch).SerializeToString()
        try:
            response = self._client.post(
                url, content=body, headers=self._headers, timeout=timeout
            )
        except httpx.HTTPError as exc:
            raise ExportTransportError(
                f"HTTP export of {batch.kind.value} to {url} failed: {exc!r}"
            ) from exc
        if response.is_success:
            return
        raise ExportTransportError(
            f"HTTP export of {batch.kind.value} to {url} rejected: "
            f"{response.status_code}",
            retryable=response.status_code in _RETRYABLE_HTTP_STATUS,
        )

    def close(self) -> None:
        self._client.close()


class ConsoleTransport:
    """Writes batches as NDJSON to a stream, for local development."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stderr
        self._lock = threading.Lock()

    def export(self, batch: ExportBatch, timeout: float) -> None:
        with self._lock:
            self._stream.write(ndjson.encode_batch(batch))
            self._stream.flush()

    def close(self) -> None:
        return None


def create_transport(
    config: TelemetryConfig,
) -> GrpcTransport | HttpTransport | ConsoleTransport:
    """Create the transport selected by config.protocol."""
    if config.protocol is Protocol.GRPC:
        return GrpcTransport(config.collector_endpoint, headers=config.headers)
    if config.protocol is Protocol.HTTP:
        return HttpTransport(config.collector_endpoint, headers=config.headers)
    if config.protocol is Protocol.CONSOLE:
        return ConsoleTransport()
    raise ConfigurationError(f"unsupported protocol: {config.protocol!r}")
