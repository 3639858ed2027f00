"""FastAPI adapter: request instrumentation and a telemetry stats endpoint."""

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, FastAPI

from apptelemetry.adapters.frameworks.asgi import TelemetryMiddleware
from apptelemetry.coordinator import TelemetryCoordinator


def instrument_app(
    app: FastAPI,
    coordinator: TelemetryCoordinator,
    exclude_paths: list[str] | None = None,
) -> FastAPI:
    """Wrap a FastAPI app with TelemetryMiddleware.

    Args:
        app: The application to instrument.
        coordinator: Source of the tracer and emitters.
        exclude_paths: Paths (fnmatch patterns) served without telemetry.

    Returns:
        The same app, for chaining.
    """
    app.add_middleware(
        TelemetryMiddleware,
        tracer=coordinator.tracer,
        logs=coordinator.logs,
        metrics=coordinator.metrics,
        exclude_paths=exclude_paths,
    )
    return app


def create_telemetry_router(coordinator: TelemetryCoordinator) -> APIRouter:
    """Create a FastAPI router with a /telemetry/stats endpoint.

    The counters stay accurate while the collector is unreachable, so this
    is the place to look when telemetry goes missing.
    """
    router = APIRouter()

    @router.get("/telemetry/stats")
    async def get_stats() -> dict[str, Any]:
        """Return exporter counters and current queue depth."""
        exporter = coordinator.exporter
        return {
            "service_name": coordinator.resource.service_name,
            **asdict(exporter.stats),
            "queued_batches": exporter.queued_batches,
            "max_queued_batches": exporter.max_queued_batches,
            "usage_errors": coordinator.tracer.usage_errors,
            "dropped_measurements": exporter.aggregator.dropped_measurements,
        }

    return router
