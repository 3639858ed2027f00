"""FastAPI application exposing GET /weatherforecast."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request

from apptelemetry.adapters.frameworks.fastapi import (
    create_telemetry_router,
    instrument_app,
)
from apptelemetry.adapters.frameworks.httpx import TracingTransport
from apptelemetry.config import TelemetryConfig
from apptelemetry.coordinator import TelemetryCoordinator, init_telemetry
from apptelemetry.service.forecast import WeatherForecast, generate_forecast


def create_app(
    coordinator: TelemetryCoordinator | None = None,
    http_client: httpx.AsyncClient | None = None,
    settings: TelemetryConfig | None = None,
) -> FastAPI:
    """Create the forecast service.

    Args:
        coordinator: Telemetry pipeline. When omitted, one is initialised from
            settings (or the environment) and shut down with the app.
        http_client: Client for the upstream call. When omitted, a traced
            httpx.AsyncClient is opened for the app's lifetime.
        settings: Configuration used when no coordinator is given.

    Raises:
        ConfigurationError: If telemetry has to be initialised and the
            configuration is invalid.
    """
    owns_telemetry = coordinator is None
    telemetry = coordinator or init_telemetry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = http_client or httpx.AsyncClient(
            transport=TracingTransport(telemetry.tracer, telemetry.metrics),
            timeout=telemetry.config.upstream_timeout_ms / 1000,
        )
        app.state.http_client = client
        try:
            yield
        finally:
            if http_client is None:
                await client.aclose()
            if owns_telemetry:
                telemetry.shutdown()

    app = FastAPI(
        title="apptelemetry sample service",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.telemetry = telemetry
    instrument_app(app, telemetry, exclude_paths=["/telemetry/*"])
    app.include_router(create_telemetry_router(telemetry))

    @app.get("/weatherforecast", response_model=list[WeatherForecast])
    async def get_weather_forecast(request: Request) -> list[WeatherForecast]:
        """Call the upstream service, then return five days of forecasts."""
        telemetry.logs.info("GetWeatherForecast called")
        client: httpx.AsyncClient = request.app.state.http_client
        response = await client.get(telemetry.config.upstream_url)
        response.raise_for_status()
        telemetry.logs.info("GetWeatherForecast called {resp}", resp=response.text)
        return generate_forecast()

    return app
