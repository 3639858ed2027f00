"""Exceptions raised by the telemetry pipeline."""


class TelemetryError(Exception):
    """Base class for all telemetry errors."""


class ConfigurationError(TelemetryError):
    """Invalid configuration; telemetry cannot start."""


class ExportTransportError(TelemetryError):
    """A batch could not be delivered to the collector.

    Raised by transports and contained by the exporter client, which
    retries the batch and eventually drops it.
    """

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class UsageError(TelemetryError):
    """An emitter was used incorrectly (e.g., a span ended twice).

    Reported through logging and counters; never raised into request
    handling code.
    """
