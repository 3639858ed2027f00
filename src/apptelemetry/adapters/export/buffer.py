"""Ring buffer of sealed export batches.

Provides bounded in-memory storage that evicts the oldest batch when the
buffer is full, so a stalled collector cannot grow memory without limit.
"""

import threading
from collections import deque

from apptelemetry.core.models import ExportBatch


class BatchBuffer:
    """Thread-safe ring buffer of ExportBatch objects.

    Any number of emitter threads may put(); a single flusher drains.
    When the buffer is full, the oldest batch is evicted to make room.

    Args:
        max_batches: Maximum number of batches to hold.
    """

    def __init__(self, max_batches: int) -> None:
        if max_batches < 1:
            raise ValueError("max_batches must be at least 1")
        self.max_batches = max_batches
        self._buffer: deque[ExportBatch] = deque()
        self._lock = threading.Lock()

    def put(self, batch: ExportBatch) -> ExportBatch | None:
        """Append a batch.

        Returns:
            The evicted oldest batch if the buffer was full, otherwise None.
        """
        evicted = None
        with self._lock:
            if len(self._buffer) >= self.max_batches:
                evicted = self._buffer.popleft()
            self._buffer.append(batch)
        return evicted

    def pop(self) -> ExportBatch | None:
        """Remove and return the oldest batch, or None if empty."""
        with self._lock:
            return self._buffer.popleft() if self._buffer else None

    def drain(self) -> list[ExportBatch]:
        """Remove and return every batch, oldest first."""
        with self._lock:
            batches = list(self._buffer)
            self._buffer.clear()
        return batches

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)
