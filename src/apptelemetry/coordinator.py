"""Process-wide telemetry lifecycle.

The coordinator wires configuration, resource identity, the transport,
the exporter client and the three emitters together, and tears them down
again with a bounded flush.
"""

import logging
import threading

from apptelemetry.adapters.export.client import ExporterClient
from apptelemetry.adapters.export.transports import create_transport
from apptelemetry.config import TelemetryConfig, load_config
from apptelemetry.core.logs import LogEmitter
from apptelemetry.core.metrics import MetricEmitter
from apptelemetry.core.models import ResourceIdentity
from apptelemetry.core.ports import TransportPort
from apptelemetry.core.resource import build_resource
from apptelemetry.core.runtime import RuntimeMetricsCollector
from apptelemetry.core.tracing import Tracer

logger = logging.getLogger(__name__)


class TelemetryCoordinator:
    """Owns the telemetry pipeline for one process.

    Attributes:
        config: The validated configuration.
        resource: Identity attached to every signal.
        exporter: Exporter client that batches and delivers signals.
        logs: Log emitter.
        tracer: Trace emitter.
        metrics: Metric emitter.
    """

    def __init__(
        self,
        config: TelemetryConfig,
        resource: ResourceIdentity,
        exporter: ExporterClient,
        runtime_metrics: RuntimeMetricsCollector | None = None,
    ) -> None:
        self.config = config
        self.resource = resource
        self.exporter = exporter
        self.logs = LogEmitter(resource, exporter)
        self.tracer = Tracer(resource, exporter)
        self.metrics = MetricEmitter(exporter)
        exporter.add_collect_hook(self.metrics.collect_callbacks)
        self._runtime_metrics = runtime_metrics
        if runtime_metrics is not None:
            self.metrics.register_callback(runtime_metrics)
        self._shutdown = False
        self._lock = threading.Lock()

    @classmethod
    def init(
        cls,
        config: TelemetryConfig | None = None,
        transport: TransportPort | None = None,
    ) -> "TelemetryCoordinator":
        """Build and start the pipeline.

        Args:
            config: Settings; loaded from the environment when omitted.
            transport: Override the transport selected by config.protocol.

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        config = (config or load_config()).validate()
        resource = build_resource(
            config.service_name, config.service_version, config.resource_attributes
        )
        exporter = ExporterClient(
            transport or create_transport(config),
            resource,
            export_interval=config.export_interval_ms / 1000,
            metric_export_interval=config.metric_export_interval_ms / 1000,
            timeout=config.export_timeout_ms / 1000,
            max_retries=config.max_retries,
            max_batch_size=config.max_batch_size,
            max_queued_batches=config.max_queued_batches,
            shutdown_timeout=config.shutdown_timeout_ms / 1000,
        )
        runtime = RuntimeMetricsCollector() if config.runtime_metrics else None
        coordinator = cls(config, resource, exporter, runtime_metrics=runtime)
        logger.info(
            "telemetry started for %s %s, exporting via %s to %s",
            resource.service_name,
            resource.service_version,
            config.protocol.value,
            config.collector_endpoint,
        )
        return coordinator

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def force_flush(self, timeout: float | None = None) -> bool:
        """Export everything recorded so far; see ExporterClient.force_flush."""
        return self.exporter.force_flush(timeout)

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop runtime collection, flush within timeout seconds, close.

        Calling it again is a no-op.
        """
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
        if self._runtime_metrics is not None:
            self.metrics.unregister_callback(self._runtime_metrics)
        if timeout is None:
            timeout = self.config.shutdown_timeout_ms / 1000
        self.exporter.shutdown(timeout)
        stats = self.exporter.stats
        logger.info(
            "telemetry stopped: %d batches exported, %d dropped (%d signals)",
            stats.exported_batches,
            stats.dropped_batches,
            stats.dropped_items,
        )


_instance: TelemetryCoordinator | None = None
_instance_lock = threading.Lock()


def init_telemetry(
    config: TelemetryConfig | None = None,
    transport: TransportPort | None = None,
) -> TelemetryCoordinator:
    """Initialise the process-wide coordinator.

    A second call while one is running returns the existing instance.
    """
    global _instance
    with _instance_lock:
        if _instance is not None and not _instance.is_shutdown:
            logger.warning("telemetry already initialised, reusing existing instance")
            return _instance
        _instance = TelemetryCoordinator.init(config, transport)
        return _instance


def get_telemetry() -> TelemetryCoordinator | None:
    """Return the process-wide coordinator, if one was initialised."""
    return _instance


def shutdown_telemetry(timeout: float | None = None) -> None:
    """Shut down the process-wide coordinator, if any."""
    global _instance
    with _instance_lock:
        instance, _instance = _instance, None
    if instance is not None:
        instance.shutdown(timeout)
