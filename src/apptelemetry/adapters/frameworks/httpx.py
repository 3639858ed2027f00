"""httpx transport wrapper that traces outbound HTTP calls."""

import time

import httpx

from apptelemetry.core.metrics import MetricEmitter
from apptelemetry.core.models import SpanKind, SpanStatus
from apptelemetry.core.propagation import inject
from apptelemetry.core.tracing import Tracer

CLIENT_DURATION = "http.client.request.duration"


class TracingTransport(httpx.AsyncBaseTransport):
    """Wraps another async transport with a client span per request.

    The current trace continues into the called service through an injected
    ``traceparent`` header. The request duration is recorded as a histogram.

    Example:
        ```python
        client = httpx.AsyncClient(
            transport=TracingTransport(telemetry.tracer, telemetry.metrics)
        )
        ```
    """

    def __init__(
        self,
        tracer: Tracer,
        metrics: MetricEmitter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.tracer = tracer
        self.metrics = metrics
        self._transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        host = request.url.host
        start = time.perf_counter()
        status = 0
        with self.tracer.span(
            f"{method} {host}",
            kind=SpanKind.CLIENT,
            attributes={
                "http.request.method": method,
                "server.address": host,
                "url.full": str(request.url),
            },
        ) as span:
            carrier: dict[str, str] = {}
            inject(span.context, carrier)
            request.headers.update(carrier)
            try:
                response = await self._transport.handle_async_request(request)
                status = response.status_code
                span.set_attribute("http.response.status_code", status)
                if status >= 400:
                    span.set_status(SpanStatus.ERROR, f"HTTP {status}")
                return response
            finally:
                if self.metrics is not None:
                    self.metrics.record(
                        CLIENT_DURATION,
                        time.perf_counter() - start,
                        attributes={
                            "method": method,
                            "server.address": host,
                            "status": str(status),
                        },
                    )

    async def aclose(self) -> None:
        await self._transport.aclose()
