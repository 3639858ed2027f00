"""W3C Trace Context propagation (``traceparent`` header).

Parsing and formatting are delegated to OpenTelemetry's
TraceContextTextMapPropagator; this module converts between its span
contexts and the hex-string SpanContext used by the emitters.
"""

from collections.abc import Mapping, MutableMapping

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from apptelemetry.core.models import SpanContext

TRACEPARENT_HEADER = "traceparent"

_propagator = TraceContextTextMapPropagator()


def _to_otel(context: SpanContext, sampled: bool) -> Context:
    flags = trace.TraceFlags(
        trace.TraceFlags.SAMPLED if sampled else trace.TraceFlags.DEFAULT
    )
    span_context = trace.SpanContext(
        trace_id=int(context.trace_id, 16),
        span_id=int(context.span_id, 16),
        is_remote=context.remote,
        trace_flags=flags,
    )
    return trace.set_span_in_context(trace.NonRecordingSpan(span_context), Context())


def format_traceparent(context: SpanContext, sampled: bool = True) -> str:
    """Render a span context as a traceparent header value."""
    carrier: dict[str, str] = {}
    _propagator.inject(carrier, context=_to_otel(context, sampled))
    return carrier[TRACEPARENT_HEADER]


def parse_traceparent(value: str | None) -> SpanContext | None:
    """Parse a traceparent header value.

    Returns:
        A remote SpanContext, or None if the value is missing or malformed.
    """
    if not value:
        return None
    extracted = _propagator.extract({TRACEPARENT_HEADER: value}, context=Context())
    span_context = trace.get_current_span(extracted).get_span_context()
    if not span_context.is_valid:
        return None
    return SpanContext(
        trace_id=trace.format_trace_id(span_context.trace_id),
        span_id=trace.format_span_id(span_context.span_id),
        remote=True,
    )


def inject(context: SpanContext, carrier: MutableMapping[str, str]) -> None:
    """Write the traceparent header for context into carrier."""
    carrier[TRACEPARENT_HEADER] = format_traceparent(context)


def extract(carrier: Mapping[str, str]) -> SpanContext | None:
    """Read a remote span context from a header mapping (case-insensitive)."""
    for key, value in carrier.items():
        if key.lower() == TRACEPARENT_HEADER:
            return parse_traceparent(value)
    return None
