"""Example FastAPI application instrumented with apptelemetry.

Run with:
    OTEL_EXPORTER_OTLP_PROTOCOL=console uvicorn examples.fastapi_example:app

Endpoints:
    /users            - Returns users; traced, logged and measured
    /telemetry/stats  - Exporter counters (not instrumented)

Instrumentation:
    Every request gets a server span, a request log and request metrics from
    the middleware. The handler adds a child span and a log record of its own.
    With the console protocol every exported batch is printed as NDJSON.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from apptelemetry import init_telemetry, shutdown_telemetry
from apptelemetry.adapters.frameworks.fastapi import (
    create_telemetry_router,
    instrument_app,
)

telemetry = init_telemetry()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Flush whatever is still buffered before the process exits
    shutdown_telemetry()


app = FastAPI(title="apptelemetry example", lifespan=lifespan)
instrument_app(app, telemetry, exclude_paths=["/telemetry/*"])
app.include_router(create_telemetry_router(telemetry))


@app.get("/users")
async def get_users() -> dict[str, list[dict[str, str]]]:
    """Users endpoint with a child span around the simulated fetch."""
    with telemetry.tracer.span("load_users") as span:
        await asyncio.sleep(0.05)
        telemetry.logs.info("loaded {count} users", count=2, source="db")
        span.set_attribute("users.count", 2)
    telemetry.metrics.increment("users.listed", attributes={"endpoint": "users"})
    return {
        "users": [
            {"id": "1", "name": "Alice"},
            {"id": "2", "name": "Bob"},
        ]
    }
