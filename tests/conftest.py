"""Shared test fixtures for all test modules."""

from collections.abc import Callable, Generator
from typing import Any

import pytest

from apptelemetry.adapters.export.client import ExporterClient
from apptelemetry.adapters.export.in_memory import InMemorySignalSink
from apptelemetry.core.context import clear_log_context
from apptelemetry.core.logs import LogEmitter
from apptelemetry.core.metrics import MetricEmitter
from apptelemetry.core.models import ResourceIdentity
from apptelemetry.core.resource import build_resource
from apptelemetry.core.tracing import Tracer

from tests.fakes import (
    FailingTransport,
    RecordingTransport,
    StalledTransport,
)


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def failing_transport() -> FailingTransport:
    return FailingTransport()


@pytest.fixture
def stalled_transport() -> Generator[StalledTransport]:
    transport = StalledTransport()
    yield transport
    transport.release()


# === Core fixtures ===


@pytest.fixture(autouse=True)
def _clean_log_context() -> Generator[None]:
    """Each test starts and ends without request-scoped log fields."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def resource() -> ResourceIdentity:
    return build_resource("svc-A", "1.2.3")


@pytest.fixture
def sink() -> InMemorySignalSink:
    return InMemorySignalSink()


@pytest.fixture
def tracer(resource: ResourceIdentity, sink: InMemorySignalSink) -> Tracer:
    return Tracer(resource, sink)


@pytest.fixture
def log_emitter(resource: ResourceIdentity, sink: InMemorySignalSink) -> LogEmitter:
    return LogEmitter(resource, sink)


@pytest.fixture
def metric_emitter(sink: InMemorySignalSink) -> MetricEmitter:
    return MetricEmitter(sink)


@pytest.fixture
def make_client(
    resource: ResourceIdentity,
) -> Generator[Callable[..., ExporterClient]]:
    """Factory for exporter clients with fast test defaults.

    Every client created is shut down at teardown.
    """
    clients: list[ExporterClient] = []

    def _make(transport: Any, **overrides: Any) -> ExporterClient:
        options: dict[str, Any] = {
            "export_interval": 0.05,
            "metric_export_interval": 0.05,
            "timeout": 0.5,
            "max_retries": 2,
            "max_batch_size": 10,
            "max_queued_batches": 8,
            "backoff_base": 0.001,
            "backoff_cap": 0.01,
            "shutdown_timeout": 1.0,
            "autostart": False,
        }
        options.update(overrides)
        client = ExporterClient(transport, resource, **options)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.shutdown(0.5)


# === ASGI Test Fixtures ===


@pytest.fixture
def basic_asgi_app():
    """Basic ASGI app fixture that returns 200 OK."""
    from apptelemetry.adapters.frameworks.asgi import Receive, Scope, Send

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"OK"})

    return app


@pytest.fixture
def status_asgi_app():
    """Factory for ASGI apps that respond with a fixed status code."""
    from apptelemetry.adapters.frameworks.asgi import Receive, Scope, Send

    def _app(status: int):
        async def app(scope: Scope, receive: Receive, send: Send) -> None:
            await send({"type": "http.response.start", "status": status, "headers": []})
            await send({"type": "http.response.body", "body": b""})

        return app

    return _app


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI scope dicts."""
    from apptelemetry.adapters.frameworks.asgi import Scope

    def _scope(
        method: str = "GET",
        path: str = "/test",
        headers: dict[str, str] | None = None,
    ) -> Scope:
        return {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": b"",
            "headers": [
                (k.lower().encode(), v.encode()) for k, v in (headers or {}).items()
            ],
        }

    return _scope


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture."""
    responses: list[dict[str, Any]] = []

    async def send(message: dict[str, Any]) -> None:
        responses.append(message)

    return send, responses


async def _empty_receive() -> dict[str, Any]:
    return {"type": "http.request", "body": b"", "more_body": False}


@pytest.fixture
def asgi_receive():
    return _empty_receive
