"""NDJSON encoder for export batches (local debugging output)."""

import json
from collections.abc import Iterable
from typing import Any

from apptelemetry.core.models import (
    ExportBatch,
    LogRecord,
    MetricPoint,
    Signal,
    Span,
)


def _log_to_dict(record: LogRecord) -> dict[str, Any]:
    return {
        "timestamp": record.timestamp,
        "level": record.level,
        "message": record.message,
        "template": record.template,
        "fields": dict(record.fields),
        "trace_id": record.trace_id,
        "span_id": record.span_id,
        "resource": dict(record.resource.attributes),
    }


def _span_to_dict(span: Span) -> dict[str, Any]:
    return {
        "trace_id": span.trace_id,
        "span_id": span.span_id,
        "parent_span_id": span.parent_span_id,
        "name": span.name,
        "kind": span.kind.value,
        "start_time": span.start_time,
        "end_time": span.end_time,
        "status": span.status.value,
        "status_message": span.status_message,
        "attributes": dict(span.attributes),
        "resource": dict(span.resource.attributes),
    }


def _metric_to_dict(point: MetricPoint) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": point.name,
        "kind": point.kind.value,
        "value": point.value,
        "timestamp": point.timestamp,
        "attributes": dict(point.attributes),
    }
    if point.resource is not None:
        data["resource"] = dict(point.resource.attributes)
    if point.bucket_counts:
        data.update(
            count=point.count,
            sum=point.sum,
            min=point.min,
            max=point.max,
            bucket_counts=list(point.bucket_counts),
            explicit_bounds=list(point.explicit_bounds),
        )
    return data


def signal_to_dict(item: Signal) -> dict[str, Any]:
    """Convert any signal into a JSON-serializable dict."""
    if isinstance(item, LogRecord):
        return _log_to_dict(item)
    if isinstance(item, Span):
        return _span_to_dict(item)
    return _metric_to_dict(item)


def encode_ndjson(items: Iterable[Signal]) -> str:
    """Encode signals to newline-delimited JSON.

    Args:
        items: An iterable of signals.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no items.
    """
    lines = [json.dumps(signal_to_dict(item)) for item in items]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def encode_logs(records: Iterable[LogRecord]) -> str:
    """Encode log records to newline-delimited JSON."""
    return encode_ndjson(records)


def encode_batch(batch: ExportBatch) -> str:
    """Encode a batch with each line tagged by the batch's signal kind."""
    lines = [
        json.dumps({"signal": batch.kind.value, **signal_to_dict(item)})
        for item in batch.items
    ]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
