"""Core domain models for telemetry signals."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

AttributeValue = str | int | float | bool
Attributes = Mapping[str, AttributeValue]


class SignalKind(str, Enum):
    """The three signal types shipped to the collector."""

    LOGS = "logs"
    SPANS = "spans"
    METRICS = "metrics"


class SpanKind(str, Enum):
    """Role of a span in the request it belongs to."""

    INTERNAL = "internal"
    SERVER = "server"
    CLIENT = "client"


class SpanStatus(str, Enum):
    """Final status of a span."""

    UNSET = "unset"
    OK = "ok"
    ERROR = "error"


class InstrumentKind(str, Enum):
    """Kind of instrument that produced a metric point."""

    COUNTER = "counter"
    HISTOGRAM = "histogram"
    GAUGE = "gauge"


class ExportOutcome(str, Enum):
    """Result of handing one batch to the collector."""

    SUCCESS = "success"
    DROPPED = "dropped"


def freeze(attributes: Mapping[str, AttributeValue] | None) -> Attributes:
    """Return a read-only copy of an attribute mapping."""
    return MappingProxyType(dict(attributes or {}))


@dataclass(frozen=True)
class ResourceIdentity:
    """Service identity attached to every emitted signal.

    Attributes:
        attributes: Resource attributes (service.name, service.version, ...).
    """

    attributes: Attributes = field(default_factory=lambda: freeze(None))

    @property
    def service_name(self) -> str:
        return str(self.attributes["service.name"])

    @property
    def service_version(self) -> str:
        return str(self.attributes.get("service.version", ""))


@dataclass(frozen=True)
class LogRecord:
    """A structured log record.

    Attributes:
        timestamp: Unix timestamp in nanoseconds.
        level: Log level (DEBUG, INFO, WARN, ERROR, FATAL).
        template: The message template before field substitution.
        message: The rendered message.
        fields: Structured fields, including request-scoped context.
        resource: Identity of the emitting service.
        trace_id: Hex trace id of the active span, if any.
        span_id: Hex span id of the active span, if any.
    """

    timestamp: int
    level: str
    template: str
    message: str
    resource: ResourceIdentity
    fields: Attributes = field(default_factory=lambda: freeze(None))
    trace_id: str | None = None
    span_id: str | None = None


@dataclass(frozen=True)
class SpanContext:
    """Identifiers that link a span to its trace and parent."""

    trace_id: str
    span_id: str
    remote: bool = False


@dataclass(frozen=True)
class Span:
    """A sealed span, ready for export.

    Attributes:
        trace_id: 32 hex characters shared by every span of a trace.
        span_id: 16 hex characters unique to this span.
        parent_span_id: Span id of the parent, None for a root span.
        name: Operation name.
        kind: Server, client or internal.
        start_time: Unix timestamp in nanoseconds.
        end_time: Unix timestamp in nanoseconds, never before start_time.
        status: Final status.
        status_message: Description attached to an error status.
        attributes: Span attributes.
        resource: Identity of the emitting service.
    """

    trace_id: str
    span_id: str
    name: str
    kind: SpanKind
    start_time: int
    end_time: int
    resource: ResourceIdentity
    parent_span_id: str | None = None
    status: SpanStatus = SpanStatus.UNSET
    status_message: str = ""
    attributes: Attributes = field(default_factory=lambda: freeze(None))

    @property
    def duration_ns(self) -> int:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class MetricPoint:
    """A metric measurement or an aggregate of measurements.

    Raw measurements only set name, kind, value, attributes and timestamp.
    Aggregated points also carry the window start and, for histograms, the
    distribution statistics.

    Attributes:
        name: Instrument name (e.g., http.server.request.duration).
        kind: Counter, histogram or gauge.
        value: Measured value; the window total for aggregated counters.
        attributes: Dimension attributes.
        timestamp: Unix timestamp in nanoseconds.
        resource: Identity of the emitting service (set on aggregates).
        start_timestamp: Start of the aggregation window in nanoseconds.
        count: Number of histogram observations.
        sum: Sum of histogram observations.
        min: Smallest histogram observation.
        max: Largest histogram observation.
        bucket_counts: Per-bucket counts, one more than explicit_bounds.
        explicit_bounds: Histogram bucket upper bounds.
    """

    name: str
    kind: InstrumentKind
    value: float
    timestamp: int
    attributes: Attributes = field(default_factory=lambda: freeze(None))
    resource: ResourceIdentity | None = None
    start_timestamp: int | None = None
    count: int = 0
    sum: float = 0.0
    min: float | None = None
    max: float | None = None
    bucket_counts: tuple[int, ...] = ()
    explicit_bounds: tuple[float, ...] = ()


Signal = LogRecord | Span | MetricPoint


@dataclass(frozen=True)
class ExportBatch:
    """An ordered run of signals of a single kind.

    Attributes:
        kind: Which signal kind every item belongs to.
        items: The signals, in submission order.
        created_at: Unix timestamp in nanoseconds when the batch was sealed.
    """

    kind: SignalKind
    items: tuple[Signal, ...]
    created_at: int

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class ExportResult:
    """What happened to a batch handed to the exporter client."""

    outcome: ExportOutcome
    attempts: int
    error: str | None = None
