"""Log emitter: structured log records with resource and trace correlation."""

import logging
import re
import time
from collections.abc import Mapping
from typing import Any

from apptelemetry.core.context import get_active_span, get_log_context
from apptelemetry.core.models import (
    AttributeValue,
    LogRecord,
    ResourceIdentity,
    SignalKind,
    freeze,
)
from apptelemetry.core.ports import SignalSinkPort

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_.]*)\}")

LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "FATAL": logging.CRITICAL,
}


def level_for(levelno: int) -> str:
    """Map a stdlib logging level number to a record level name."""
    if levelno >= logging.CRITICAL:
        return "FATAL"
    if levelno >= logging.ERROR:
        return "ERROR"
    if levelno >= logging.WARNING:
        return "WARN"
    if levelno >= logging.INFO:
        return "INFO"
    return "DEBUG"


def render(template: str, fields: Mapping[str, Any]) -> str:
    """Substitute ``{name}`` placeholders; unknown names are left untouched."""

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        return str(fields[key]) if key in fields else match.group(0)

    return _PLACEHOLDER.sub(_replace, template)


def coerce_fields(fields: Mapping[str, Any]) -> dict[str, AttributeValue]:
    """Keep primitive values as-is and stringify everything else."""
    return {
        key: value if isinstance(value, (str, int, float, bool)) else str(value)
        for key, value in fields.items()
        if value is not None
    }


class LogEmitter:
    """Produces structured log records and submits them for export.

    Every record is also written synchronously to a local stdlib logger so
    operators keep visibility when the collector is unreachable.

    Example:
        ```python
        emitter = LogEmitter(resource, exporter_client)
        emitter.info("GetWeatherForecast called {resp}", resp=body)
        ```
    """

    def __init__(
        self,
        resource: ResourceIdentity,
        sink: SignalSinkPort,
        local_logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the emitter.

        Args:
            resource: Identity attached to every record.
            sink: Where records are submitted for export.
            local_logger: Console sink. Defaults to "apptelemetry.events".
        """
        self.resource = resource
        self._sink = sink
        self._local = local_logger or logging.getLogger("apptelemetry.events")

    def build(
        self,
        level: str,
        template: str,
        fields: Mapping[str, Any],
        timestamp: int | None = None,
    ) -> LogRecord:
        """Create a record tagged with resource, context and active span."""
        merged = coerce_fields({**get_log_context(), **fields})
        span = get_active_span()
        context = span.context if span is not None else None
        return LogRecord(
            timestamp=timestamp if timestamp is not None else time.time_ns(),
            level=level.upper(),
            template=template,
            message=render(template, merged),
            resource=self.resource,
            fields=freeze(merged),
            trace_id=context.trace_id if context else None,
            span_id=context.span_id if context else None,
        )

    def export(self, record: LogRecord) -> None:
        """Submit an already built record without writing it locally."""
        self._sink.submit(SignalKind.LOGS, record)

    def emit(self, level: str, template: str, **fields: Any) -> LogRecord:
        """Write a record locally and submit it for export.

        Args:
            level: Log level (DEBUG, INFO, WARN, ERROR, FATAL).
            template: Message template with ``{field}`` placeholders.
            **fields: Structured fields.

        Returns:
            The LogRecord that was emitted.
        """
        record = self.build(level, template, fields)
        self._local.log(
            LEVELS.get(record.level, logging.INFO),
            record.message,
            extra={
                "service_name": self.resource.service_name,
                "trace_id": record.trace_id or "",
                "span_id": record.span_id or "",
            },
        )
        self.export(record)
        return record

    def debug(self, template: str, **fields: Any) -> LogRecord:
        return self.emit("DEBUG", template, **fields)

    def info(self, template: str, **fields: Any) -> LogRecord:
        return self.emit("INFO", template, **fields)

    def warn(self, template: str, **fields: Any) -> LogRecord:
        return self.emit("WARN", template, **fields)

    def error(self, template: str, **fields: Any) -> LogRecord:
        return self.emit("ERROR", template, **fields)
