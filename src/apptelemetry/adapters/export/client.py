"""Exporter client: batching, buffering and best-effort delivery.

Emitters call submit(), which only takes a short lock and appends. A single
background flusher thread seals open batches every export interval (or as
soon as one reaches max_batch_size), closes the metric window every metric
interval, and sends queued batches through the transport with capped
exponential backoff. Delivery is at-most-once; nothing survives a restart.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from apptelemetry.adapters.export.buffer import BatchBuffer
from apptelemetry.core.aggregation import MetricAggregator
from apptelemetry.core.exceptions import ExportTransportError
from apptelemetry.core.models import (
    ExportBatch,
    ExportOutcome,
    ExportResult,
    MetricPoint,
    ResourceIdentity,
    Signal,
    SignalKind,
)
from apptelemetry.core.ports import TransportPort

logger = logging.getLogger(__name__)

CollectHook = Callable[[], None]


@dataclass
class ExportStats:
    """Local counters that stay accurate when the collector is unreachable."""

    exported_batches: int = 0
    exported_items: int = 0
    dropped_batches: int = 0
    dropped_items: int = 0
    failed_attempts: int = 0
    suppressed_failure_logs: int = 0


class ExporterClient:
    """Owns the export buffer and the flusher thread.

    Args:
        transport: Delivers batches to the collector.
        resource: Identity stamped on aggregated metric points.
        export_interval: Seconds between log/span flushes.
        metric_export_interval: Seconds per metric aggregation window.
        timeout: Seconds allowed per export attempt.
        max_retries: Retries per batch after the first attempt.
        max_batch_size: Signals per batch before it is sealed early.
        max_queued_batches: Sealed batches held before the oldest is dropped.
        backoff_base: Delay before the first retry, in seconds.
        backoff_cap: Upper bound on any single retry delay, in seconds.
        failure_log_interval: Minimum seconds between export failure logs.
        shutdown_timeout: Default final-flush budget for shutdown().
        autostart: Start the flusher thread immediately.
    """

    def __init__(
        self,
        transport: TransportPort,
        resource: ResourceIdentity | None = None,
        *,
        export_interval: float = 5.0,
        metric_export_interval: float = 30.0,
        timeout: float = 10.0,
        max_retries: int = 5,
        max_batch_size: int = 512,
        max_queued_batches: int = 64,
        backoff_base: float = 0.5,
        backoff_cap: float = 8.0,
        failure_log_interval: float = 30.0,
        shutdown_timeout: float = 5.0,
        autostart: bool = True,
    ) -> None:
        self.transport = transport
        self.aggregator = MetricAggregator(resource or ResourceIdentity())
        self.export_interval = export_interval
        self.metric_export_interval = metric_export_interval
        self.timeout = timeout
        self.max_retries = max_retries
        self.max_batch_size = max_batch_size
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.failure_log_interval = failure_log_interval
        self.shutdown_timeout = shutdown_timeout

        self._buffer = BatchBuffer(max_queued_batches)
        self._pending: dict[SignalKind, list[Signal]] = {
            SignalKind.LOGS: [],
            SignalKind.SPANS: [],
        }
        self._lock = threading.Lock()
        self._stats = ExportStats()
        self._stats_lock = threading.Lock()
        self._collect_hooks: list[CollectHook] = []
        self._last_failure_log: float | None = None

        self._wakeup = threading.Event()
        self._stopping = threading.Event()
        self._interrupt = threading.Event()
        self._shutdown = False
        self._shutdown_deadline: float | None = None
        self._flush_cond = threading.Condition()
        self._flush_requested = 0
        self._flush_completed = 0
        self._thread: threading.Thread | None = None
        if autostart:
            self.start()

    # -- emitter side -------------------------------------------------------

    def submit(self, kind: SignalKind, item: Signal) -> None:
        """Accept one signal for export. Never blocks on I/O, never raises."""
        try:
            self._submit(kind, item)
        except Exception:
            logger.exception("failed to buffer %s signal", kind.value)

    def _submit(self, kind: SignalKind, item: Signal) -> None:
        if self._shutdown:
            self._count(dropped_items=1)
            return
        if kind is SignalKind.METRICS:
            if isinstance(item, MetricPoint):
                self.aggregator.add(item)
            return
        with self._lock:
            pending = self._pending[kind]
            pending.append(item)
            if len(pending) < self.max_batch_size:
                return
            self._pending[kind] = []
        self._enqueue(ExportBatch(kind=kind, items=tuple(pending), created_at=time.time_ns()))
        self._wakeup.set()

    def add_collect_hook(self, hook: CollectHook) -> None:
        """Run hook at the start of every metric window collection."""
        self._collect_hooks.append(hook)

    # -- buffering ----------------------------------------------------------

    @property
    def stats(self) -> ExportStats:
        """A snapshot of the export counters."""
        with self._stats_lock:
            return replace(self._stats)

    @property
    def queued_batches(self) -> int:
        return len(self._buffer)

    @property
    def max_queued_batches(self) -> int:
        return self._buffer.max_batches

    def _count(self, **deltas: int) -> None:
        with self._stats_lock:
            for name, delta in deltas.items():
                setattr(self._stats, name, getattr(self._stats, name) + delta)

    def _enqueue(self, batch: ExportBatch) -> None:
        evicted = self._buffer.put(batch)
        if evicted is not None:
            self._count(dropped_batches=1, dropped_items=len(evicted))
            self._report_failure(
                f"export buffer full, dropped oldest {evicted.kind.value} batch "
                f"of {len(evicted)}"
            )

    def _seal_pending(self) -> None:
        now = time.time_ns()
        with self._lock:
            sealed = [
                ExportBatch(kind=kind, items=tuple(items), created_at=now)
                for kind, items in self._pending.items()
                if items
            ]
            for batch in sealed:
                self._pending[batch.kind] = []
        for batch in sealed:
            self._enqueue(batch)

    def _collect_metrics(self) -> None:
        for hook in list(self._collect_hooks):
            try:
                hook()
            except Exception:
                logger.exception("metric collect hook %r failed", hook)
        points = self.aggregator.collect()
        if points:
            self._enqueue(
                ExportBatch(
                    kind=SignalKind.METRICS, items=tuple(points), created_at=time.time_ns()
                )
            )

    # -- delivery -----------------------------------------------------------

    def backoff(self, attempt: int) -> float:
        """Delay before retry number attempt + 1 (capped exponential)."""
        return min(self.backoff_cap, self.backoff_base * (2**attempt))

    def _deadline(self, deadline: float | None) -> float | None:
        shutdown_deadline = self._shutdown_deadline
        if deadline is None:
            return shutdown_deadline
        if shutdown_deadline is None:
            return deadline
        return min(deadline, shutdown_deadline)

    def send(
        self, kind: SignalKind, batch: ExportBatch, deadline: float | None = None
    ) -> ExportResult:
        """Deliver one batch, retrying transient failures.

        Args:
            kind: Signal kind of the batch.
            batch: The batch to deliver.
            deadline: time.monotonic() value after which no attempt starts.

        Returns:
            ExportResult with SUCCESS, or DROPPED once retries, a
            non-retryable error, or the deadline is exhausted.
        """
        attempts = 0
        error: ExportTransportError | None = None
        for attempt in range(self.max_retries + 1):
            timeout = self.timeout
            effective = self._deadline(deadline)
            if effective is not None:
                remaining = effective - time.monotonic()
                if remaining <= 0:
                    break
                timeout = min(timeout, remaining)
            attempts += 1
            try:
                self.transport.export(batch, timeout)
            except ExportTransportError as exc:
                error = exc
            except Exception as exc:
                error = ExportTransportError(f"{type(exc).__name__}: {exc}", retryable=False)
            else:
                self._count(exported_batches=1, exported_items=len(batch))
                return ExportResult(outcome=ExportOutcome.SUCCESS, attempts=attempts)

            self._count(failed_attempts=1)
            if not error.retryable or attempt == self.max_retries:
                break
            delay = self.backoff(attempt)
            effective = self._deadline(deadline)
            if effective is not None and time.monotonic() + delay >= effective:
                break
            self._interrupt.wait(delay)

        self._count(dropped_batches=1, dropped_items=len(batch))
        reason = str(error) if error is not None else "deadline exceeded"
        self._report_failure(
            f"dropped {kind.value} batch of {len(batch)} after {attempts} attempt(s): "
            f"{reason}"
        )
        return ExportResult(outcome=ExportOutcome.DROPPED, attempts=attempts, error=reason)

    def _report_failure(self, message: str) -> None:
        """Log a failure at most once per failure_log_interval."""
        now = time.monotonic()
        with self._stats_lock:
            last = self._last_failure_log
            if last is not None and now - last < self.failure_log_interval:
                self._stats.suppressed_failure_logs += 1
                return
            self._last_failure_log = now
            suppressed = self._stats.suppressed_failure_logs
        logger.warning(
            "telemetry export: %s (%d similar messages suppressed so far)",
            message,
            suppressed,
        )

    def _drain(self, deadline: float | None = None) -> None:
        while (batch := self._buffer.pop()) is not None:
            self.send(batch.kind, batch, deadline)

    # -- flusher thread -----------------------------------------------------

    def start(self) -> None:
        """Start the background flusher if it is not running."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._run, name="apptelemetry-exporter", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        now = time.monotonic()
        next_seal = now + self.export_interval
        next_metrics = now + self.metric_export_interval
        while not self._stopping.is_set():
            now = time.monotonic()
            self._wakeup.wait(max(0.0, min(next_seal, next_metrics) - now))
            self._wakeup.clear()
            if self._stopping.is_set():
                break
            with self._flush_cond:
                ticket = self._flush_requested
                flushing = ticket > self._flush_completed
            now = time.monotonic()
            if flushing or now >= next_seal:
                self._seal_pending()
                next_seal = now + self.export_interval
            if flushing or now >= next_metrics:
                self._collect_metrics()
                next_metrics = now + self.metric_export_interval
            self._drain()
            with self._flush_cond:
                self._flush_completed = max(self._flush_completed, ticket)
                self._flush_cond.notify_all()
        self._final_flush()

    def _final_flush(self) -> None:
        self._seal_pending()
        self._collect_metrics()
        self._drain(self._shutdown_deadline)
        with self._flush_cond:
            self._flush_completed = self._flush_requested
            self._flush_cond.notify_all()

    def force_flush(self, timeout: float | None = None) -> bool:
        """Export everything buffered so far.

        Returns:
            True if the flush cycle finished within timeout seconds.
        """
        if self._shutdown:
            return False
        if self._thread is None or not self._thread.is_alive():
            self._seal_pending()
            self._collect_metrics()
            deadline = None if timeout is None else time.monotonic() + timeout
            self._drain(deadline)
            return len(self._buffer) == 0
        with self._flush_cond:
            self._flush_requested += 1
            ticket = self._flush_requested
        self._wakeup.set()
        with self._flush_cond:
            return self._flush_cond.wait_for(
                lambda: self._flush_completed >= ticket, timeout
            )

    def shutdown(self, timeout: float | None = None) -> None:
        """Flush within timeout seconds, drop whatever remains, and close.

        Safe to call more than once; later calls return immediately.
        """
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
        budget = self.shutdown_timeout if timeout is None else timeout
        self._shutdown_deadline = time.monotonic() + budget
        self._stopping.set()
        self._interrupt.set()
        self._wakeup.set()

        thread = self._thread
        if thread is not None and thread.is_alive():
            thread.join(max(0.0, self._shutdown_deadline - time.monotonic()))
        else:
            self._final_flush()

        leftovers = self._buffer.drain()
        with self._lock:
            pending = [items for items in self._pending.values() if items]
            for kind in self._pending:
                self._pending[kind] = []
        dropped_items = sum(len(b) for b in leftovers) + sum(len(p) for p in pending)
        if leftovers or pending:
            self._count(
                dropped_batches=len(leftovers) + len(pending), dropped_items=dropped_items
            )
            logger.warning(
                "telemetry shutdown timed out, dropped %d signal(s)", dropped_items
            )
        try:
            self.transport.close()
        except Exception:
            logger.exception("failed to close telemetry transport")
