"""Per-window aggregation of metric measurements.

Counters are summed, histograms are bucketed with count/sum/min/max, and
gauges keep their last value. collect() returns delta aggregates for the
window that just closed and starts a new one.
"""

import bisect
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from apptelemetry.core.models import (
    AttributeValue,
    InstrumentKind,
    MetricPoint,
    ResourceIdentity,
    freeze,
)

DEFAULT_HISTOGRAM_BUCKETS = [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10]

_SeriesKey = tuple[str, InstrumentKind, frozenset[tuple[str, AttributeValue]]]


@dataclass
class _Series:
    name: str
    kind: InstrumentKind
    attributes: dict[str, AttributeValue]
    value: float = 0.0
    count: int = 0
    sum: float = 0.0
    min: float | None = None
    max: float | None = None
    bucket_counts: list[int] = field(default_factory=list)
    timestamp: int = 0


class MetricAggregator:
    """Thread-safe aggregation of measurements over an export window.

    Args:
        resource: Identity attached to every aggregated point.
        buckets: Histogram bucket upper bounds.
        max_series: Upper bound on distinct (name, kind, attributes)
            series per window. Measurements for new series beyond the
            bound are counted in dropped_measurements and discarded.
    """

    def __init__(
        self,
        resource: ResourceIdentity,
        buckets: Sequence[float] | None = None,
        max_series: int = 2000,
    ) -> None:
        self.resource = resource
        self.buckets = tuple(
            float(b) for b in (buckets if buckets is not None else DEFAULT_HISTOGRAM_BUCKETS)
        )
        self.max_series = max_series
        self._lock = threading.Lock()
        self._series: dict[_SeriesKey, _Series] = {}
        self._window_start = time.time_ns()
        self.dropped_measurements = 0

    def add(self, point: MetricPoint) -> None:
        """Fold one measurement into the current window."""
        key: _SeriesKey = (point.name, point.kind, frozenset(point.attributes.items()))
        with self._lock:
            series = self._series.get(key)
            if series is None:
                if len(self._series) >= self.max_series:
                    self.dropped_measurements += 1
                    return
                series = _Series(
                    name=point.name, kind=point.kind, attributes=dict(point.attributes)
                )
                if point.kind is InstrumentKind.HISTOGRAM:
                    series.bucket_counts = [0] * (len(self.buckets) + 1)
                self._series[key] = series
            series.timestamp = point.timestamp
            if point.kind is InstrumentKind.COUNTER:
                series.value += point.value
            elif point.kind is InstrumentKind.GAUGE:
                series.value = point.value
            else:
                self._observe(series, point.value)

    def _observe(self, series: _Series, value: float) -> None:
        series.count += 1
        series.sum += value
        series.value = series.sum
        series.min = value if series.min is None else min(series.min, value)
        series.max = value if series.max is None else max(series.max, value)
        series.bucket_counts[bisect.bisect_left(self.buckets, value)] += 1

    def collect(self) -> list[MetricPoint]:
        """Close the current window and return its aggregates."""
        now = time.time_ns()
        with self._lock:
            series_list = list(self._series.values())
            start = self._window_start
            self._series = {}
            self._window_start = now
        return [
            MetricPoint(
                name=s.name,
                kind=s.kind,
                value=s.value,
                timestamp=now,
                attributes=freeze(s.attributes),
                resource=self.resource,
                start_timestamp=start,
                count=s.count,
                sum=s.sum,
                min=s.min,
                max=s.max,
                bucket_counts=tuple(s.bucket_counts),
                explicit_bounds=self.buckets if s.kind is InstrumentKind.HISTOGRAM else (),
            )
            for s in series_list
        ]
