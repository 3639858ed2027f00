"""In-memory signal sink."""

import threading

from apptelemetry.core.models import LogRecord, MetricPoint, Signal, SignalKind, Span


class InMemorySignalSink:
    """In-memory implementation of SignalSinkPort.

    Keeps every submitted signal in a list. Suitable for testing and for
    running emitters without a collector.
    """

    def __init__(self) -> None:
        self._items: list[tuple[SignalKind, Signal]] = []
        self._lock = threading.Lock()

    def submit(self, kind: SignalKind, item: Signal) -> None:
        """Record a submitted signal."""
        with self._lock:
            self._items.append((kind, item))

    def items(self, kind: SignalKind | None = None) -> list[Signal]:
        """Return submitted signals, optionally filtered by kind."""
        with self._lock:
            return [item for k, item in self._items if kind is None or k is kind]

    @property
    def logs(self) -> list[LogRecord]:
        return [i for i in self.items(SignalKind.LOGS) if isinstance(i, LogRecord)]

    @property
    def spans(self) -> list[Span]:
        return [i for i in self.items(SignalKind.SPANS) if isinstance(i, Span)]

    @property
    def metrics(self) -> list[MetricPoint]:
        return [
            i for i in self.items(SignalKind.METRICS) if isinstance(i, MetricPoint)
        ]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
