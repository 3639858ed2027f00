"""Port interfaces for the export side of the pipeline.

These protocols define the contracts that export adapters must implement.
The emitters depend only on these interfaces, not on concrete adapters.
"""

from typing import Protocol, runtime_checkable

from apptelemetry.core.models import ExportBatch, Signal, SignalKind


@runtime_checkable
class SignalSinkPort(Protocol):
    """Port the emitters hand their signals to.

    Implementations must never block on network I/O and must never raise
    into the caller. Examples: ExporterClient, InMemorySignalSink.
    """

    def submit(self, kind: SignalKind, item: Signal) -> None:
        """Accept one signal for eventual export."""
        ...


@runtime_checkable
class TransportPort(Protocol):
    """Port for delivering an encoded batch to a collector.

    Examples: GrpcTransport, HttpTransport, ConsoleTransport.
    """

    def export(self, batch: ExportBatch, timeout: float) -> None:
        """Deliver one batch.

        Args:
            batch: The batch to deliver.
            timeout: Seconds allowed for this attempt.

        Raises:
            ExportTransportError: If the collector did not accept the batch.
        """
        ...

    def close(self) -> None:
        """Release connections held by the transport."""
        ...
