"""Trace emitter: span lifecycle from begin() to a single sealed export."""

import logging
import threading
import time
import traceback
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from enum import Enum

from opentelemetry.sdk.trace.id_generator import RandomIdGenerator
from opentelemetry.trace import format_span_id, format_trace_id

from apptelemetry.core.context import activate_span, get_active_span, restore_span
from apptelemetry.core.exceptions import UsageError
from apptelemetry.core.models import (
    AttributeValue,
    ResourceIdentity,
    SignalKind,
    Span,
    SpanContext,
    SpanKind,
    SpanStatus,
    freeze,
)
from apptelemetry.core.ports import SignalSinkPort

logger = logging.getLogger(__name__)


class SpanState(str, Enum):
    """Lifecycle state of a span handle."""

    UNSTARTED = "unstarted"
    ACTIVE = "active"
    ENDED = "ended"


_ids = RandomIdGenerator()


def new_trace_id() -> str:
    return format_trace_id(_ids.generate_trace_id())


def new_span_id() -> str:
    return format_span_id(_ids.generate_span_id())


class SpanHandle:
    """The only way to mutate an in-flight span.

    A handle is created active by Tracer.begin() and must eventually be
    ended. Ending seals the span and submits it for export exactly once.
    Calls after the span ended are ignored and reported as usage errors.
    """

    def __init__(
        self,
        tracer: "Tracer",
        name: str,
        context: SpanContext,
        kind: SpanKind,
        parent_span_id: str | None = None,
        attributes: Mapping[str, AttributeValue] | None = None,
    ) -> None:
        self.name = name
        self.kind = kind
        self.parent_span_id = parent_span_id
        self._tracer = tracer
        self._context = context
        self._attributes: dict[str, AttributeValue] = dict(attributes or {})
        self._status = SpanStatus.UNSET
        self._status_message = ""
        self._lock = threading.Lock()
        self._state = SpanState.UNSTARTED
        self._start_time = 0
        self._start_perf = 0
        self._sealed: Span | None = None

    def _start(self) -> None:
        self._start_time = time.time_ns()
        self._start_perf = time.perf_counter_ns()
        self._state = SpanState.ACTIVE

    @property
    def context(self) -> SpanContext:
        return self._context

    @property
    def state(self) -> SpanState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is SpanState.ACTIVE

    @property
    def start_time(self) -> int:
        return self._start_time

    @property
    def sealed(self) -> Span | None:
        """The sealed span once end() has run, otherwise None."""
        return self._sealed

    @property
    def attributes(self) -> dict[str, AttributeValue]:
        return dict(self._attributes)

    @property
    def status(self) -> SpanStatus:
        return self._status

    def _check_recording(self, operation: str) -> bool:
        if self._state is SpanState.ACTIVE:
            return True
        self._tracer.report_usage_error(
            f"{operation} on span {self.name!r} in state {self._state.value}"
        )
        return False

    def set_attribute(self, key: str, value: AttributeValue) -> None:
        with self._lock:
            if self._check_recording("set_attribute"):
                self._attributes[key] = value

    def set_attributes(self, attributes: Mapping[str, AttributeValue]) -> None:
        with self._lock:
            if self._check_recording("set_attributes"):
                self._attributes.update(attributes)

    def set_status(self, status: SpanStatus, message: str = "") -> None:
        """Set the span status.

        An OK status is final: later attempts to downgrade it are ignored.
        """
        with self._lock:
            if not self._check_recording("set_status"):
                return
            if self._status is SpanStatus.OK and status is not SpanStatus.OK:
                return
            self._status = status
            self._status_message = message if status is SpanStatus.ERROR else ""

    def record_exception(self, exc: BaseException) -> None:
        """Mark the span as failed and record the exception as attributes."""
        with self._lock:
            if not self._check_recording("record_exception"):
                return
            self._attributes["exception.type"] = type(exc).__name__
            self._attributes["exception.message"] = str(exc)
            self._attributes["exception.stacktrace"] = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
            self._status = SpanStatus.ERROR
            self._status_message = f"{type(exc).__name__}: {exc}"

    def end(self) -> Span | None:
        """Seal the span and submit it for export.

        Returns:
            The sealed Span, or None if the span had already ended.
        """
        with self._lock:
            if not self._check_recording("end"):
                return None
            elapsed = time.perf_counter_ns() - self._start_perf
            span = Span(
                trace_id=self._context.trace_id,
                span_id=self._context.span_id,
                parent_span_id=self.parent_span_id,
                name=self.name,
                kind=self.kind,
                start_time=self._start_time,
                end_time=self._start_time + max(elapsed, 0),
                status=self._status,
                status_message=self._status_message,
                attributes=freeze(self._attributes),
                resource=self._tracer.resource,
            )
            self._state = SpanState.ENDED
            self._sealed = span
        self._tracer.export(span)
        return span


class Tracer:
    """Creates spans and hands sealed spans to the export sink."""

    def __init__(self, resource: ResourceIdentity, sink: SignalSinkPort) -> None:
        self.resource = resource
        self._sink = sink
        self._usage_errors = 0
        self._lock = threading.Lock()

    @property
    def usage_errors(self) -> int:
        return self._usage_errors

    def report_usage_error(self, message: str) -> None:
        """Log and count a misuse of the tracing API without raising."""
        with self._lock:
            self._usage_errors += 1
        logger.warning("telemetry usage error: %s", UsageError(message))

    def export(self, span: Span) -> None:
        self._sink.submit(SignalKind.SPANS, span)

    def begin(
        self,
        name: str,
        parent: "SpanHandle | SpanContext | None" = None,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, AttributeValue] | None = None,
    ) -> SpanHandle:
        """Start a span.

        Args:
            name: Operation name.
            parent: Parent handle or (remote) context. Defaults to the span
                active in the current task; a root span is started if none.
            kind: Server, client or internal.
            attributes: Initial attributes.

        Returns:
            An active SpanHandle. The caller must call end() on it.
        """
        if parent is None:
            parent = get_active_span()
        parent_context = parent.context if isinstance(parent, SpanHandle) else parent
        if parent_context is None:
            context = SpanContext(trace_id=new_trace_id(), span_id=new_span_id())
            parent_span_id = None
        else:
            context = SpanContext(
                trace_id=parent_context.trace_id, span_id=new_span_id()
            )
            parent_span_id = parent_context.span_id
        handle = SpanHandle(
            self,
            name,
            context,
            kind=kind,
            parent_span_id=parent_span_id,
            attributes=attributes,
        )
        handle._start()
        return handle

    @contextmanager
    def span(
        self,
        name: str,
        parent: "SpanHandle | SpanContext | None" = None,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, AttributeValue] | None = None,
    ) -> Generator[SpanHandle]:
        """Run a block inside an active span that always ends.

        If the block raises, the span status becomes error, the exception is
        recorded on the span, the span ends, and the exception propagates.

        Usage:
            with tracer.span("load_forecast") as span:
                span.set_attribute("days", 5)
        """
        handle = self.begin(name, parent=parent, kind=kind, attributes=attributes)
        token = activate_span(handle)
        try:
            yield handle
        except BaseException as exc:
            handle.record_exception(exc)
            raise
        finally:
            restore_span(token)
            if handle.is_recording:
                handle.end()
