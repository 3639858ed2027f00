"""Weather forecast records served by the sample endpoint."""

import random
from datetime import date, timedelta

from pydantic import BaseModel, computed_field

SUMMARIES = [
    "Freezing",
    "Bracing",
    "Chilly",
    "Cool",
    "Mild",
    "Warm",
    "Balmy",
    "Hot",
    "Sweltering",
    "Scorching",
]

MIN_TEMPERATURE_C = -20
MAX_TEMPERATURE_C = 55  # exclusive


class WeatherForecast(BaseModel):
    date: date
    temperatureC: int
    summary: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def temperatureF(self) -> int:
        return 32 + int(self.temperatureC / 0.5556)


def generate_forecast(
    days: int = 5,
    today: date | None = None,
    rng: random.Random | None = None,
) -> list[WeatherForecast]:
    """Return one random forecast per day, starting tomorrow.

    Args:
        days: Number of records.
        today: Reference date. Defaults to date.today().
        rng: Random source, for reproducible output in tests.
    """
    today = today or date.today()
    rng = rng or random.Random()
    return [
        WeatherForecast(
            date=today + timedelta(days=offset),
            temperatureC=rng.randrange(MIN_TEMPERATURE_C, MAX_TEMPERATURE_C),
            summary=rng.choice(SUMMARIES),
        )
        for offset in range(1, days + 1)
    ]
