"""Tests for the telemetry coordinator lifecycle."""

from collections.abc import Generator

import pytest

from apptelemetry import coordinator as coordinator_module
from apptelemetry.config import TelemetryConfig
from apptelemetry.coordinator import (
    TelemetryCoordinator,
    get_telemetry,
    init_telemetry,
    shutdown_telemetry,
)
from apptelemetry.core.exceptions import ConfigurationError
from apptelemetry.core.models import SignalKind
from tests.fakes import RecordingTransport

pytestmark = [pytest.mark.core, pytest.mark.tier(2)]


@pytest.fixture
def config() -> TelemetryConfig:
    return TelemetryConfig(
        service_name="svc-A",
        service_version="1.2.3",
        export_interval_ms=50,
        metric_export_interval_ms=50,
        export_timeout_ms=500,
        shutdown_timeout_ms=1000,
    )


@pytest.fixture(autouse=True)
def _reset_global() -> Generator[None]:
    yield
    shutdown_telemetry(0.5)
    coordinator_module._instance = None


class TestTelemetryCoordinator:
    def test_emitters_share_resource(
        self, config: TelemetryConfig, recording_transport: RecordingTransport
    ) -> None:
        telemetry = TelemetryCoordinator.init(config, transport=recording_transport)
        try:
            assert telemetry.resource.service_name == "svc-A"
            assert telemetry.logs.resource is telemetry.resource
            assert telemetry.tracer.resource is telemetry.resource
        finally:
            telemetry.shutdown(0.5)

    def test_signals_reach_transport_with_resource(
        self, config: TelemetryConfig, recording_transport: RecordingTransport
    ) -> None:
        telemetry = TelemetryCoordinator.init(config, transport=recording_transport)
        telemetry.logs.info("hello")
        with telemetry.tracer.span("op"):
            pass
        telemetry.metrics.increment("requests")
        assert telemetry.force_flush(2.0)
        telemetry.shutdown(0.5)

        for kind in SignalKind:
            items = recording_transport.items(kind)
            assert items, kind
            assert all(item.resource.service_name == "svc-A" for item in items)
        assert recording_transport.closed

    def test_runtime_metrics_are_collected(
        self, config: TelemetryConfig, recording_transport: RecordingTransport
    ) -> None:
        telemetry = TelemetryCoordinator.init(config, transport=recording_transport)
        telemetry.shutdown(1.0)
        names = {p.name for p in recording_transport.items(SignalKind.METRICS)}
        assert "process.runtime.memory.rss" in names

    def test_runtime_metrics_can_be_disabled(
        self, config: TelemetryConfig, recording_transport: RecordingTransport
    ) -> None:
        config.runtime_metrics = False
        telemetry = TelemetryCoordinator.init(config, transport=recording_transport)
        telemetry.shutdown(1.0)
        assert recording_transport.items(SignalKind.METRICS) == []

    def test_shutdown_is_idempotent(
        self, config: TelemetryConfig, recording_transport: RecordingTransport
    ) -> None:
        telemetry = TelemetryCoordinator.init(config, transport=recording_transport)
        telemetry.shutdown(0.5)
        telemetry.shutdown(0.5)
        assert telemetry.is_shutdown
        assert telemetry.force_flush(0.1) is False

    def test_invalid_config_fails_fast(
        self, recording_transport: RecordingTransport
    ) -> None:
        with pytest.raises(ConfigurationError):
            TelemetryCoordinator.init(
                TelemetryConfig(collector_endpoint="nowhere"),
                transport=recording_transport,
            )


class TestProcessWideInstance:
    def test_init_reuses_live_instance(
        self, config: TelemetryConfig, recording_transport: RecordingTransport
    ) -> None:
        first = init_telemetry(config, transport=recording_transport)
        second = init_telemetry(config, transport=RecordingTransport())
        assert first is second
        assert get_telemetry() is first

    def test_shutdown_clears_instance(
        self, config: TelemetryConfig, recording_transport: RecordingTransport
    ) -> None:
        telemetry = init_telemetry(config, transport=recording_transport)
        shutdown_telemetry(0.5)
        assert telemetry.is_shutdown
        assert get_telemetry() is None

    def test_shutdown_without_instance_is_harmless(self) -> None:
        shutdown_telemetry()
        assert get_telemetry() is None
