"""Metric emitter and measurement helpers."""

import logging
import threading
import time
from collections.abc import Callable, Mapping

from apptelemetry.core.exceptions import UsageError
from apptelemetry.core.models import (
    AttributeValue,
    InstrumentKind,
    MetricPoint,
    SignalKind,
    freeze,
)
from apptelemetry.core.ports import SignalSinkPort

logger = logging.getLogger(__name__)

MetricCallback = Callable[["MetricEmitter"], None]


def counter(
    name: str,
    value: float = 1.0,
    attributes: Mapping[str, AttributeValue] | None = None,
) -> MetricPoint:
    """Create a counter measurement.

    Args:
        name: Instrument name (e.g., "http.server.request.count").
        value: Increment value (default: 1.0).
        attributes: Optional dimension attributes.

    Returns:
        MetricPoint with current timestamp
    """
    return MetricPoint(
        name=name,
        kind=InstrumentKind.COUNTER,
        value=float(value),
        timestamp=time.time_ns(),
        attributes=freeze(attributes),
    )


def gauge(
    name: str,
    value: float,
    attributes: Mapping[str, AttributeValue] | None = None,
) -> MetricPoint:
    """Create a gauge measurement.

    Args:
        name: Instrument name (e.g., "process.runtime.memory.rss").
        value: Current gauge value.
        attributes: Optional dimension attributes.

    Returns:
        MetricPoint with current timestamp
    """
    return MetricPoint(
        name=name,
        kind=InstrumentKind.GAUGE,
        value=float(value),
        timestamp=time.time_ns(),
        attributes=freeze(attributes),
    )


def histogram(
    name: str,
    value: float,
    attributes: Mapping[str, AttributeValue] | None = None,
) -> MetricPoint:
    """Create a single histogram observation.

    Bucketing happens at aggregation time, see MetricAggregator.
    """
    return MetricPoint(
        name=name,
        kind=InstrumentKind.HISTOGRAM,
        value=float(value),
        timestamp=time.time_ns(),
        attributes=freeze(attributes),
    )


class MetricEmitter:
    """Records counter, histogram and gauge measurements.

    Measurements are handed to the sink, which aggregates them per export
    window. Callbacks registered with register_callback() are run once per
    window by collect_callbacks() to observe values such as runtime stats.
    """

    def __init__(self, sink: SignalSinkPort) -> None:
        self._sink = sink
        self._callbacks: list[MetricCallback] = []
        self._lock = threading.Lock()

    def increment(
        self,
        name: str,
        value: float = 1.0,
        attributes: Mapping[str, AttributeValue] | None = None,
    ) -> None:
        """Add a non-negative value to a counter."""
        if value < 0:
            logger.warning(
                "telemetry usage error: %s",
                UsageError(f"counter {name!r} cannot be decremented by {value}"),
            )
            return
        self._sink.submit(SignalKind.METRICS, counter(name, value, attributes))

    def record(
        self,
        name: str,
        value: float,
        attributes: Mapping[str, AttributeValue] | None = None,
    ) -> None:
        """Record one histogram observation (e.g., request latency)."""
        self._sink.submit(SignalKind.METRICS, histogram(name, value, attributes))

    def set_gauge(
        self,
        name: str,
        value: float,
        attributes: Mapping[str, AttributeValue] | None = None,
    ) -> None:
        """Record the current value of a gauge."""
        self._sink.submit(SignalKind.METRICS, gauge(name, value, attributes))

    def register_callback(self, callback: MetricCallback) -> None:
        """Register a callback observed once per export window."""
        with self._lock:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: MetricCallback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def collect_callbacks(self) -> None:
        """Run every registered callback.

        A failing callback is logged and skipped so the others still run.
        """
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(self)
            except Exception:
                logger.exception("metric callback %r failed", callback)
