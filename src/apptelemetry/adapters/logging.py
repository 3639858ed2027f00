"""Python logging handler adapter for apptelemetry.

This adapter bridges Python's standard library logging module to the log
emitter, so records written through ordinary loggers are exported with the
same resource identity and trace correlation as emitter records.
"""

import logging
import sys
import traceback
from dataclasses import replace

from apptelemetry.core.context import get_active_span
from apptelemetry.core.logs import LogEmitter, level_for
from apptelemetry.core.models import AttributeValue

# Attributes every LogRecord has; anything else came in through `extra`
_RESERVED_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        # added by the console filter below
        "service_name",
        "trace_id",
        "span_id",
    }
)

# Source location fields attached by default
_DEFAULT_SOURCE_FIELDS = ["module", "funcName", "lineno", "pathname"]

# The pipeline's own loggers; their records are never exported
_INTERNAL_LOGGER_PREFIX = "apptelemetry"

CONSOLE_FORMAT = (
    "%(asctime)s %(levelname)s [%(service_name)s] "
    "trace_id=%(trace_id)s span_id=%(span_id)s %(name)s: %(message)s"
)


def _extra_fields(record: logging.LogRecord) -> dict[str, AttributeValue]:
    """Primitive values passed through the `extra` argument of a logging call."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and isinstance(value, (str, int, float, bool))
    }


def _exception_fields(exc_info: tuple) -> dict[str, AttributeValue]:
    exc_type, exc, tb = exc_info
    fields: dict[str, AttributeValue] = {}
    if exc_type is not None:
        fields["exception.type"] = exc_type.__name__
    if exc is not None:
        fields["exception.message"] = str(exc)
    if tb is not None:
        fields["exception.stacktrace"] = "".join(
            traceback.format_exception(exc_type, exc, tb)
        )
    return fields


class TelemetryHandler(logging.Handler):
    """Logging handler that exports log records through a LogEmitter.

    Example:
        ```python
        handler = TelemetryHandler(telemetry.logs)
        logging.getLogger().addHandler(handler)
        ```
    """

    def __init__(
        self,
        emitter: LogEmitter,
        include_attrs: list[str] | None = None,
    ) -> None:
        """Initialize the handler with a log emitter.

        Args:
            emitter: Emitter that builds and submits the records.
            include_attrs: List of LogRecord attributes to include. Defaults to
                ["module", "funcName", "lineno", "pathname"].
        """
        super().__init__()
        self._emitter = emitter
        self._include_attrs = list(include_attrs or _DEFAULT_SOURCE_FIELDS)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == _INTERNAL_LOGGER_PREFIX or name.startswith(
            _INTERNAL_LOGGER_PREFIX + "."
        ):
            return False
        return super().filter(record)

    def _source_fields(self, record: logging.LogRecord) -> dict[str, AttributeValue]:
        available: dict[str, AttributeValue] = {
            "module": record.name,
            "funcName": record.funcName or "",
            "lineno": record.lineno,
            "pathname": record.pathname,
        }
        return {k: available[k] for k in self._include_attrs if k in available}

    def emit(self, record: logging.LogRecord) -> None:
        """Convert a stdlib record and submit it for export.

        Args:
            record: The log record to emit.
        """
        try:
            fields = self._source_fields(record)
            fields.update(_extra_fields(record))
            if record.exc_info:
                fields.update(_exception_fields(record.exc_info))
            built = self._emitter.build(
                level_for(record.levelno),
                str(record.msg),
                fields,
                timestamp=int(record.created * 1_000_000_000),
            )
            # stdlib messages are %-formatted, not templates
            self._emitter.export(replace(built, message=record.getMessage()))
        except Exception:
            self.handleError(record)


class ConsoleContextFilter(logging.Filter):
    """Fills in service and trace fields used by CONSOLE_FORMAT.

    Records written by the LogEmitter already carry them; anything else gets
    the configured service name and the active span, if any.
    """

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service_name"):
            record.service_name = self.service_name
        if not getattr(record, "trace_id", ""):
            span = get_active_span()
            record.trace_id = span.context.trace_id if span is not None else "-"
            record.span_id = span.context.span_id if span is not None else "-"
        return True


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    emitter: LogEmitter | None = None,
) -> list[logging.Handler]:
    """Configure the root logger with a console sink and an export handler.

    Args:
        service_name: Name shown on every console line.
        log_level: Root logging level (DEBUG, INFO, WARNING, ERROR).
        emitter: If given, a TelemetryHandler exporting to it is attached.

    Returns:
        The handlers that were installed, so they can be removed again.
    """
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console.addFilter(ConsoleContextFilter(service_name))
    handlers: list[logging.Handler] = [console]
    if emitter is not None:
        handlers.append(TelemetryHandler(emitter))

    root_logger = logging.getLogger()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("grpc").setLevel(logging.WARNING)
    return handlers
