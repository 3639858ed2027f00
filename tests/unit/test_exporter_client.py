"""Tests for the exporter client: batching, retry, overflow and shutdown."""

import logging
import time

import pytest

from apptelemetry.adapters.export.client import ExporterClient
from apptelemetry.core.metrics import counter, histogram
from apptelemetry.core.models import (
    ExportBatch,
    ExportOutcome,
    InstrumentKind,
    ResourceIdentity,
    SignalKind,
)
from tests.fakes import (
    FailingTransport,
    RecordingTransport,
    SlowTransport,
    StalledTransport,
    make_log,
)

pytestmark = [pytest.mark.export, pytest.mark.tier(2)]


def _logs_batch(resource: ResourceIdentity, n: int = 1) -> ExportBatch:
    return ExportBatch(
        kind=SignalKind.LOGS,
        items=tuple(make_log(resource, f"m{i}") for i in range(n)),
        created_at=0,
    )


class TestBatching:
    def test_partial_batch_waits_for_flush(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client: ExporterClient = make_client(recording_transport)
        client.submit(SignalKind.LOGS, make_log(resource))
        assert client.queued_batches == 0
        assert recording_transport.batches == []

        assert client.force_flush(1.0) is True
        (batch,) = recording_transport.batches
        assert batch.kind is SignalKind.LOGS
        assert len(batch) == 1

    def test_full_batch_is_sealed_on_submit(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(recording_transport, max_batch_size=3)
        for i in range(7):
            client.submit(SignalKind.LOGS, make_log(resource, str(i)))
        assert client.queued_batches == 2

        client.force_flush(1.0)
        sizes = [len(b) for b in recording_transport.batches]
        assert sizes == [3, 3, 1]
        messages = [r.message for r in recording_transport.items(SignalKind.LOGS)]
        assert messages == [str(i) for i in range(7)]

    def test_batches_are_single_kind(
        self, make_client, recording_transport: RecordingTransport, resource, tracer
    ) -> None:
        client = make_client(recording_transport)
        client.submit(SignalKind.LOGS, make_log(resource))
        span = tracer.begin("op").end()
        client.submit(SignalKind.SPANS, span)
        client.force_flush(1.0)
        kinds = sorted(b.kind.value for b in recording_transport.batches)
        assert kinds == ["logs", "spans"]

    def test_metrics_are_aggregated_per_window(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(recording_transport)
        for _ in range(3):
            client.submit(SignalKind.METRICS, counter("requests"))
        client.submit(SignalKind.METRICS, histogram("latency", 0.2))
        client.force_flush(1.0)

        (batch,) = recording_transport.batches
        assert batch.kind is SignalKind.METRICS
        points = {p.name: p for p in batch.items}
        assert points["requests"].value == 3
        assert points["requests"].resource is resource
        assert points["latency"].kind is InstrumentKind.HISTOGRAM
        assert points["latency"].count == 1

    def test_collect_hooks_run_before_metrics_snapshot(
        self, make_client, recording_transport: RecordingTransport
    ) -> None:
        client = make_client(recording_transport)
        calls: list[int] = []

        def hook() -> None:
            calls.append(1)
            client.submit(SignalKind.METRICS, counter("observed"))

        client.add_collect_hook(hook)
        client.force_flush(1.0)
        assert calls == [1]
        assert [p.name for p in recording_transport.items(SignalKind.METRICS)] == [
            "observed"
        ]

    def test_failing_collect_hook_is_contained(
        self, make_client, recording_transport: RecordingTransport
    ) -> None:
        client = make_client(recording_transport)

        def broken() -> None:
            raise RuntimeError("boom")

        client.add_collect_hook(broken)
        assert client.force_flush(1.0) is True


class TestSend:
    def test_success(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(recording_transport, timeout=0.25)
        result = client.send(SignalKind.LOGS, _logs_batch(resource, 2))
        assert result.outcome is ExportOutcome.SUCCESS
        assert result.attempts == 1
        assert recording_transport.timeouts == [0.25]
        stats = client.stats
        assert (stats.exported_batches, stats.exported_items) == (1, 2)

    def test_retryable_failure_is_retried_then_dropped(
        self, make_client, failing_transport: FailingTransport, resource
    ) -> None:
        client = make_client(failing_transport, max_retries=2)
        result = client.send(SignalKind.LOGS, _logs_batch(resource, 4))
        assert result.outcome is ExportOutcome.DROPPED
        assert result.attempts == 3
        assert "connection refused" in (result.error or "")
        stats = client.stats
        assert stats.failed_attempts == 3
        assert (stats.dropped_batches, stats.dropped_items) == (1, 4)

    def test_non_retryable_failure_is_not_retried(
        self, make_client, resource
    ) -> None:
        transport = FailingTransport(retryable=False)
        client = make_client(transport, max_retries=5)
        result = client.send(SignalKind.LOGS, _logs_batch(resource))
        assert result.outcome is ExportOutcome.DROPPED
        assert result.attempts == 1
        assert transport.calls == 1

    def test_recovers_after_transient_failure(self, make_client, resource) -> None:
        transport = FailingTransport(fail_times=1)
        client = make_client(transport, max_retries=3)
        result = client.send(SignalKind.LOGS, _logs_batch(resource))
        assert result.outcome is ExportOutcome.SUCCESS
        assert result.attempts == 2
        assert len(transport.delivered) == 1

    def test_unexpected_transport_exception_drops_batch(
        self, make_client, resource
    ) -> None:
        class BrokenTransport(RecordingTransport):
            def export(self, batch: ExportBatch, timeout: float) -> None:
                raise ValueError("encoder bug")

        client = make_client(BrokenTransport())
        result = client.send(SignalKind.LOGS, _logs_batch(resource))
        assert result.outcome is ExportOutcome.DROPPED
        assert result.attempts == 1
        assert "encoder bug" in (result.error or "")

    def test_expired_deadline_drops_without_attempt(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(recording_transport)
        result = client.send(
            SignalKind.LOGS, _logs_batch(resource), deadline=time.monotonic() - 1
        )
        assert result.outcome is ExportOutcome.DROPPED
        assert result.attempts == 0
        assert recording_transport.batches == []

    def test_backoff_is_capped_exponential(
        self, make_client, recording_transport: RecordingTransport
    ) -> None:
        client = make_client(recording_transport, backoff_base=0.5, backoff_cap=8.0)
        assert [client.backoff(n) for n in range(6)] == [0.5, 1.0, 2.0, 4.0, 8.0, 8.0]

    def test_failure_logs_are_rate_limited(
        self,
        make_client,
        failing_transport: FailingTransport,
        resource,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        client = make_client(failing_transport, max_retries=0, failure_log_interval=60)
        with caplog.at_level(logging.WARNING, logger="apptelemetry.adapters.export.client"):
            for _ in range(3):
                client.send(SignalKind.LOGS, _logs_batch(resource))
        warnings = [r for r in caplog.records if r.name.endswith("export.client")]
        assert len(warnings) == 1
        assert client.stats.suppressed_failure_logs == 2
        assert client.stats.dropped_batches == 3


class TestOverflow:
    def test_oldest_batches_are_evicted_and_counted(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(recording_transport, max_batch_size=1, max_queued_batches=2)
        for i in range(5):
            client.submit(SignalKind.LOGS, make_log(resource, str(i)))
        assert client.queued_batches == 2
        stats = client.stats
        assert (stats.dropped_batches, stats.dropped_items) == (3, 3)

        client.force_flush(1.0)
        messages = [r.message for r in recording_transport.items(SignalKind.LOGS)]
        assert messages == ["3", "4"]

    def test_stalled_collector_never_blocks_submit(
        self, make_client, stalled_transport: StalledTransport, resource
    ) -> None:
        client = make_client(
            stalled_transport,
            max_batch_size=1,
            max_queued_batches=4,
            autostart=True,
        )
        client.submit(SignalKind.LOGS, make_log(resource, "first"))
        assert stalled_transport.started.wait(2.0)

        start = time.perf_counter()
        for i in range(500):
            client.submit(SignalKind.LOGS, make_log(resource, str(i)))
            assert client.queued_batches <= 4
        assert time.perf_counter() - start < 1.0
        assert client.stats.dropped_items == 496

        stalled_transport.release()
        client.shutdown(1.0)
        delivered = [b.items[0].message for b in stalled_transport.delivered]
        assert delivered[0] == "first"
        assert delivered[1:] == ["496", "497", "498", "499"]


class TestBackgroundFlusher:
    def test_exports_on_interval(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(recording_transport, autostart=True, export_interval=0.05)
        client.submit(SignalKind.LOGS, make_log(resource))
        assert recording_transport.wait_for_batches(1, timeout=2.0)

    def test_sealed_batch_wakes_flusher_early(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(
            recording_transport, autostart=True, export_interval=60, max_batch_size=2
        )
        client.submit(SignalKind.LOGS, make_log(resource))
        client.submit(SignalKind.LOGS, make_log(resource))
        assert recording_transport.wait_for_batches(1, timeout=2.0)

    def test_force_flush_with_running_flusher(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(recording_transport, autostart=True, export_interval=60)
        client.submit(SignalKind.LOGS, make_log(resource))
        assert client.force_flush(2.0) is True
        assert len(recording_transport.items(SignalKind.LOGS)) == 1

    def test_start_is_idempotent(
        self, make_client, recording_transport: RecordingTransport
    ) -> None:
        client = make_client(recording_transport, autostart=True)
        thread = client._thread
        client.start()
        assert client._thread is thread
        assert thread is not None and thread.name == "apptelemetry-exporter"


class TestShutdown:
    def test_flushes_pending_and_closes_transport(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(recording_transport, autostart=True, export_interval=60)
        client.submit(SignalKind.LOGS, make_log(resource))
        client.submit(SignalKind.METRICS, counter("requests"))
        client.shutdown(2.0)
        kinds = {b.kind for b in recording_transport.batches}
        assert kinds == {SignalKind.LOGS, SignalKind.METRICS}
        assert recording_transport.closed

    def test_shutdown_without_flusher_thread(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(recording_transport)
        client.submit(SignalKind.LOGS, make_log(resource))
        client.shutdown(1.0)
        assert len(recording_transport.batches) == 1

    def test_is_idempotent_and_rejects_later_signals(
        self, make_client, recording_transport: RecordingTransport, resource
    ) -> None:
        client = make_client(recording_transport, autostart=True)
        client.shutdown(1.0)
        client.shutdown(1.0)
        client.submit(SignalKind.LOGS, make_log(resource))
        assert client.stats.dropped_items == 1
        assert client.force_flush(0.1) is False

    def test_slow_collector_is_bounded_by_timeout(
        self, make_client, resource
    ) -> None:
        transport = SlowTransport()
        client = make_client(
            transport, autostart=True, export_interval=60, timeout=5.0, max_retries=5
        )
        for i in range(3):
            client.submit(SignalKind.LOGS, make_log(resource, str(i)))

        start = time.monotonic()
        client.shutdown(0.3)
        assert time.monotonic() - start < 1.5
        assert client.stats.dropped_items == 3

    def test_hung_collector_does_not_hang_shutdown(
        self, make_client, stalled_transport: StalledTransport, resource
    ) -> None:
        client = make_client(
            stalled_transport, autostart=True, max_batch_size=1, export_interval=0.01
        )
        client.submit(SignalKind.LOGS, make_log(resource, "in-flight"))
        assert stalled_transport.started.wait(2.0)
        client.submit(SignalKind.LOGS, make_log(resource, "queued"))

        start = time.monotonic()
        client.shutdown(0.2)
        assert time.monotonic() - start < 1.0
        assert client.stats.dropped_items >= 1
