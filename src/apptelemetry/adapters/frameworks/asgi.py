"""ASGI middleware that traces, logs and measures every HTTP request.

The middleware is framework-agnostic: it works with any ASGI server and any
ASGI application (FastAPI, Starlette, plain callables).
"""

import fnmatch
import time
import uuid
from collections.abc import Awaitable, Callable, MutableMapping
from dataclasses import dataclass
from typing import Any

from apptelemetry.core.context import clear_log_context, set_log_context
from apptelemetry.core.logs import LogEmitter
from apptelemetry.core.metrics import MetricEmitter
from apptelemetry.core.models import SpanKind, SpanStatus
from apptelemetry.core.propagation import extract
from apptelemetry.core.tracing import SpanHandle, Tracer

# ASGI type aliases
Message = MutableMapping[str, Any]
Scope = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

REQUEST_COUNTER = "http.server.request.count"
REQUEST_DURATION = "http.server.request.duration"


@dataclass
class _Exchange:
    """What the middleware learns about one request while it is served."""

    method: str
    path: str
    request_id: str
    started: float
    status: int = 0
    body_size: int = 0
    duration: float | None = None

    def finish(self) -> float:
        self.duration = time.perf_counter() - self.started
        return self.duration


def _headers(scope: Scope) -> dict[str, str]:
    """Decode ASGI headers into a lower-cased str mapping."""
    return {
        name.decode("latin-1").lower(): value.decode("utf-8", errors="replace")
        for name, value in scope.get("headers", [])
    }


def _request_id(headers: dict[str, str], header_name: str) -> str:
    """Return the caller's request id, or a fresh UUID4 when none was sent."""
    return headers.get(header_name.lower()) or str(uuid.uuid4())


def _level_for_status(status: int) -> str:
    """4xx responses log at WARN, 5xx at ERROR, anything else at INFO."""
    if status >= 500:
        return "ERROR"
    if status >= 400:
        return "WARN"
    return "INFO"


class TelemetryMiddleware:
    """ASGI middleware that wraps applications to capture telemetry.

    For each HTTP request it starts a server span (continuing the trace from
    an incoming ``traceparent`` header), binds the request id to the log
    context, and after the response writes one request log, increments the
    request counter and records the request duration histogram.
    Exceptions from the wrapped app are recorded on the span and re-raised.

    Example:
        ```python
        app = TelemetryMiddleware(app, telemetry.tracer, telemetry.logs,
                                  telemetry.metrics, exclude_paths=["/health"])
        ```
    """

    def __init__(
        self,
        app: ASGIApp,
        tracer: Tracer,
        logs: LogEmitter | None = None,
        metrics: MetricEmitter | None = None,
        exclude_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The wrapped ASGI application.
            tracer: Tracer used for the server span.
            logs: Emitter for the per-request log (optional).
            metrics: Emitter for request metrics (optional).
            exclude_paths: Paths passed through without telemetry. Supports
                exact matches and wildcard patterns (e.g., "/internal/*").
            request_id_header: Header the request id is read from.
        """
        self.app = app
        self.tracer = tracer
        self.logs = logs
        self.metrics = metrics
        self.exclude_paths = list(exclude_paths or ())
        self.request_id_header = request_id_header

    def is_excluded(self, path: str) -> bool:
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self.is_excluded(scope["path"]):
            await self.app(scope, receive, send)
            return

        headers = _headers(scope)
        exchange = _Exchange(
            method=scope["method"],
            path=scope["path"],
            request_id=_request_id(headers, self.request_id_header),
            started=time.perf_counter(),
        )

        async def send_and_observe(message: Message) -> None:
            kind = message["type"]
            if kind == "http.response.start":
                exchange.status = message["status"]
            elif kind == "http.response.body":
                exchange.body_size += len(message.get("body", b""))
            await send(message)

        set_log_context(request_id=exchange.request_id)
        try:
            with self.tracer.span(
                f"{exchange.method} {exchange.path}",
                parent=extract(headers),
                kind=SpanKind.SERVER,
                attributes={
                    "http.request.method": exchange.method,
                    "url.path": exchange.path,
                    "http.request_id": exchange.request_id,
                },
            ) as span:
                try:
                    await self.app(scope, receive, send_and_observe)
                except Exception as exc:
                    # The server answers an unhandled error with a 500
                    exchange.status = 500
                    self._finish_span(span, exchange, exc)
                    raise
                self._finish_span(span, exchange)
        finally:
            clear_log_context()
            # Span has ended by now
            self._record_metrics(exchange)

    def _finish_span(
        self,
        span: SpanHandle,
        exchange: _Exchange,
        exc: Exception | None = None,
    ) -> None:
        """Record span status and write the request log inside the span."""
        duration = exchange.finish()
        status = exchange.status
        span.set_attribute("http.response.status_code", status)
        if exc is None and status >= 500:
            span.set_status(SpanStatus.ERROR, f"HTTP {status}")

        if self.logs is not None:
            fields: dict[str, Any] = {
                "method": exchange.method,
                "path": exchange.path,
                "status_code": status,
                "response_body_size": exchange.body_size,
                "duration_ms": round(duration * 1000, 3),
            }
            if exc is not None:
                fields["exception"] = f"{type(exc).__name__}: {exc}"
            self.logs.emit(
                _level_for_status(status), "{method} {path} {status_code}", **fields
            )

    def _record_metrics(self, exchange: _Exchange) -> None:
        if self.metrics is None or exchange.duration is None:
            return
        route = {"method": exchange.method, "path": exchange.path}
        self.metrics.increment(
            REQUEST_COUNTER, attributes={**route, "status": str(exchange.status)}
        )
        self.metrics.record(REQUEST_DURATION, exchange.duration, attributes=route)
