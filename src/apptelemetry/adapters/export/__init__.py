"""Export pipeline: batch buffer, exporter client and collector transports."""

from apptelemetry.adapters.export.buffer import BatchBuffer
from apptelemetry.adapters.export.client import ExporterClient, ExportStats
from apptelemetry.adapters.export.in_memory import InMemorySignalSink
from apptelemetry.adapters.export.transports import (
    ConsoleTransport,
    GrpcTransport,
    HttpTransport,
    create_transport,
)

__all__ = [
    "BatchBuffer",
    "ConsoleTransport",
    "ExportStats",
    "ExporterClient",
    "GrpcTransport",
    "HttpTransport",
    "InMemorySignalSink",
    "create_transport",
]
