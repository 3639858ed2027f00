"""OTLP protobuf encoders for export batches.

Signals are converted to their OpenTelemetry SDK counterparts and encoded
with the encoders shipped in opentelemetry-exporter-otlp-proto-common, so
the requests match what the SDK exporters send. The same messages are sent
over gRPC or serialized for OTLP/HTTP.
"""

from collections.abc import Callable, Iterable, Mapping
from typing import TypeVar

from google.protobuf.message import Message
from opentelemetry import trace
from opentelemetry._logs import SeverityNumber
from opentelemetry.exporter.otlp.proto.common._log_encoder import (
    encode_logs as _encode_log_data,
)
from opentelemetry.exporter.otlp.proto.common.metrics_encoder import (
    encode_metrics as _encode_metrics_data,
)
from opentelemetry.exporter.otlp.proto.common.trace_encoder import (
    encode_spans as _encode_readable_spans,
)
from opentelemetry.proto.collector.logs.v1.logs_service_pb2 import (
    ExportLogsServiceRequest,
)
from opentelemetry.proto.collector.metrics.v1.metrics_service_pb2 import (
    ExportMetricsServiceRequest,
)
from opentelemetry.proto.collector.trace.v1.trace_service_pb2 import (
    ExportTraceServiceRequest,
)
from opentelemetry.sdk._logs import LogData
from opentelemetry.sdk._logs import LogRecord as SdkLogRecord
from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    Gauge,
    Histogram,
    HistogramDataPoint,
    Metric,
    MetricsData,
    NumberDataPoint,
    ResourceMetrics,
    ScopeMetrics,
    Sum,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.util.instrumentation import InstrumentationScope

from apptelemetry.core.models import (
    AttributeValue,
    ExportBatch,
    InstrumentKind,
    LogRecord,
    MetricPoint,
    ResourceIdentity,
    SignalKind,
    Span,
    SpanKind,
    SpanStatus,
)

SCOPE_NAME = "apptelemetry"
SCOPE_VERSION = "0.1.0"

# OTLP AnyValue.int_value is a signed 64-bit integer
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_SEVERITIES = {
    "DEBUG": SeverityNumber.DEBUG,
    "INFO": SeverityNumber.INFO,
    "WARN": SeverityNumber.WARN,
    "ERROR": SeverityNumber.ERROR,
    "FATAL": SeverityNumber.FATAL,
}

_SPAN_KINDS = {
    SpanKind.INTERNAL: trace.SpanKind.INTERNAL,
    SpanKind.SERVER: trace.SpanKind.SERVER,
    SpanKind.CLIENT: trace.SpanKind.CLIENT,
}

_STATUS_CODES = {
    SpanStatus.UNSET: trace.StatusCode.UNSET,
    SpanStatus.OK: trace.StatusCode.OK,
    SpanStatus.ERROR: trace.StatusCode.ERROR,
}

_SCOPE = InstrumentationScope(SCOPE_NAME, SCOPE_VERSION)

T = TypeVar("T")
_ResourceKey = tuple[tuple[str, AttributeValue], ...]


def otlp_value(value: AttributeValue) -> AttributeValue:
    """Return value in a form OTLP can carry.

    Integers outside the signed 64-bit range are sent as strings; protobuf
    would otherwise reject the whole request.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        if not _INT64_MIN <= value <= _INT64_MAX:
            return str(value)
    return value


def otlp_attributes(
    attributes: Mapping[str, AttributeValue],
) -> dict[str, AttributeValue]:
    return {key: otlp_value(value) for key, value in attributes.items()}


def _sdk_resource(resource: ResourceIdentity | None) -> Resource:
    return Resource(otlp_attributes(resource.attributes if resource else {}))


def _span_context(trace_id: str, span_id: str) -> trace.SpanContext:
    return trace.SpanContext(
        trace_id=int(trace_id, 16),
        span_id=int(span_id, 16),
        is_remote=False,
        trace_flags=trace.TraceFlags(trace.TraceFlags.SAMPLED),
    )


def _readable_span(span: Span) -> ReadableSpan:
    parent = (
        _span_context(span.trace_id, span.parent_span_id)
        if span.parent_span_id
        else None
    )
    return ReadableSpan(
        name=span.name,
        context=_span_context(span.trace_id, span.span_id),
        parent=parent,
        resource=_sdk_resource(span.resource),
        attributes=otlp_attributes(span.attributes),
        kind=_SPAN_KINDS[span.kind],
        status=trace.Status(_STATUS_CODES[span.status], span.status_message or None),
        start_time=span.start_time,
        end_time=span.end_time,
        instrumentation_scope=_SCOPE,
    )


def encode_spans(spans: Iterable[Span]) -> ExportTraceServiceRequest:
    """Encode sealed spans as an OTLP trace export request."""
    return _encode_readable_spans([_readable_span(span) for span in spans])


def _log_data(record: LogRecord) -> LogData:
    attributes = dict(record.fields)
    if record.template != record.message:
        attributes["message.template"] = record.template
    sdk_record = SdkLogRecord(
        timestamp=record.timestamp,
        observed_timestamp=record.timestamp,
        trace_id=int(record.trace_id, 16) if record.trace_id else 0,
        span_id=int(record.span_id, 16) if record.span_id else 0,
        trace_flags=trace.TraceFlags(
            trace.TraceFlags.SAMPLED if record.trace_id else trace.TraceFlags.DEFAULT
        ),
        severity_text=record.level,
        severity_number=_SEVERITIES.get(record.level, SeverityNumber.UNSPECIFIED),
        body=record.message,
        resource=_sdk_resource(record.resource),
        attributes=otlp_attributes(attributes),
    )
    return LogData(log_record=sdk_record, instrumentation_scope=_SCOPE)


def encode_logs(records: Iterable[LogRecord]) -> ExportLogsServiceRequest:
    """Encode log records as an OTLP logs export request."""
    return _encode_log_data([_log_data(record) for record in records])


def _group_by_resource(
    items: Iterable[T], resource_of: Callable[[T], ResourceIdentity | None]
) -> dict[_ResourceKey, tuple[ResourceIdentity | None, list[T]]]:
    groups: dict[_ResourceKey, tuple[ResourceIdentity | None, list[T]]] = {}
    for item in items:
        resource = resource_of(item)
        attributes = resource.attributes if resource else {}
        key = tuple(sorted(attributes.items(), key=lambda kv: kv[0]))
        groups.setdefault(key, (resource, []))[1].append(item)
    return groups


def _sdk_metric(point: MetricPoint) -> Metric:
    attributes = otlp_attributes(point.attributes)
    start = point.start_timestamp or point.timestamp
    data: Sum | Gauge | Histogram
    if point.kind is InstrumentKind.COUNTER:
        data = Sum(
            data_points=[
                NumberDataPoint(
                    attributes=attributes,
                    start_time_unix_nano=start,
                    time_unix_nano=point.timestamp,
                    value=float(point.value),
                )
            ],
            aggregation_temporality=AggregationTemporality.DELTA,
            is_monotonic=True,
        )
    elif point.kind is InstrumentKind.GAUGE:
        data = Gauge(
            data_points=[
                NumberDataPoint(
                    attributes=attributes,
                    start_time_unix_nano=0,
                    time_unix_nano=point.timestamp,
                    value=float(point.value),
                )
            ]
        )
    else:
        data = Histogram(
            data_points=[
                HistogramDataPoint(
                    attributes=attributes,
                    start_time_unix_nano=start,
                    time_unix_nano=point.timestamp,
                    count=point.count,
                    sum=point.sum,
                    bucket_counts=list(point.bucket_counts),
                    explicit_bounds=list(point.explicit_bounds),
                    min=point.min,
                    max=point.max,
                )
            ],
            aggregation_temporality=AggregationTemporality.DELTA,
        )
    return Metric(name=point.name, description="", unit="", data=data)


def encode_metrics(points: Iterable[MetricPoint]) -> ExportMetricsServiceRequest:
    """Encode aggregated metric points as an OTLP metrics export request."""
    resource_metrics = [
        ResourceMetrics(
            resource=_sdk_resource(resource),
            scope_metrics=[
                ScopeMetrics(
                    scope=_SCOPE,
                    metrics=[_sdk_metric(point) for point in members],
                    schema_url="",
                )
            ],
            schema_url="",
        )
        for resource, members in _group_by_resource(
            points, lambda p: p.resource
        ).values()
    ]
    return _encode_metrics_data(MetricsData(resource_metrics=resource_metrics))


def encode_batch(batch: ExportBatch) -> Message:
    """Encode a batch with the encoder matching its signal kind."""
    if batch.kind is SignalKind.SPANS:
        return encode_spans(batch.items)  # type: ignore[arg-type]
    if batch.kind is SignalKind.LOGS:
        return encode_logs(batch.items)  # type: ignore[arg-type]
    return encode_metrics(batch.items)  # type: ignore[arg-type]
