"""Sample weather forecast service instrumented with apptelemetry."""

from apptelemetry.service.app import create_app
from apptelemetry.service.forecast import WeatherForecast, generate_forecast

__all__ = ["WeatherForecast", "create_app", "generate_forecast"]
