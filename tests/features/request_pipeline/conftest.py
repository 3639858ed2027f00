"""BDD step definitions for the request pipeline feature."""

from collections.abc import Generator

import pytest
from pytest_bdd import given, parsers, then, when
from tests.features.request_pipeline.pipeline_helpers import (
    PipelineScenarioContext,
    run_async,
    send_requests,
)

from apptelemetry.core.models import SignalKind, SpanKind, SpanStatus


@pytest.fixture
def ctx() -> Generator[PipelineScenarioContext]:
    """Fresh scenario context for each test."""
    context = PipelineScenarioContext()
    yield context
    context.shutdown()


# === Background Steps ===
@given(parsers.parse('a telemetry pipeline for service "{service_name}"'))
def step_pipeline(ctx: PipelineScenarioContext, service_name: str) -> None:
    ctx.start(service_name)


@given(parsers.parse("an upstream service that answers {status:d}"))
def step_upstream(ctx: PipelineScenarioContext, status: int) -> None:
    ctx.upstream_status = status


# === Request Steps ===
@when(parsers.re(r'I request "(?P<path>[^"]+)"$'))
def step_request(ctx: PipelineScenarioContext, path: str) -> None:
    run_async(send_requests(ctx, path))


@when(parsers.parse('I request "{path}" {times:d} times'))
def step_request_times(ctx: PipelineScenarioContext, path: str, times: int) -> None:
    run_async(send_requests(ctx, path, times=times))


@when(parsers.parse('I request "{path}" with request id "{request_id}"'))
def step_request_with_id(
    ctx: PipelineScenarioContext, path: str, request_id: str
) -> None:
    run_async(send_requests(ctx, path, headers={"X-Request-ID": request_id}))


@when(parsers.parse('I request "{path}" with traceparent "{traceparent}"'))
def step_request_with_traceparent(
    ctx: PipelineScenarioContext, path: str, traceparent: str
) -> None:
    run_async(send_requests(ctx, path, headers={"traceparent": traceparent}))


# === Response Assertions ===
@then(parsers.parse("the response status is {status:d}"))
def step_response_status(ctx: PipelineScenarioContext, status: int) -> None:
    assert ctx.responses[-1].status_code == status


@then(parsers.parse("the response contains {count:d} forecasts"))
def step_forecast_count(ctx: PipelineScenarioContext, count: int) -> None:
    assert len(ctx.responses[-1].json()) == count


# === Trace Assertions ===
@then(parsers.parse('the collector receives {count:d} server span named "{name}"'))
def step_server_spans(ctx: PipelineScenarioContext, count: int, name: str) -> None:
    spans = [
        s
        for s in ctx.flushed(SignalKind.SPANS)
        if s.kind is SpanKind.SERVER and s.name == name
    ]
    assert len(spans) == count


@then("the outbound call span is a child of the server span")
def step_outbound_child(ctx: PipelineScenarioContext) -> None:
    server = ctx.server_span()
    outbound = next(s for s in ctx.flushed(SignalKind.SPANS) if s.kind is SpanKind.CLIENT)
    assert outbound.trace_id == server.trace_id
    assert outbound.parent_span_id == server.span_id
    assert ctx.upstream_requests[0].headers["traceparent"].split("-")[1] == server.trace_id


@then(parsers.parse('the server span has trace id "{trace_id}"'))
def step_server_trace_id(ctx: PipelineScenarioContext, trace_id: str) -> None:
    assert ctx.server_span().trace_id == trace_id


@then(parsers.parse('the server span has parent span id "{span_id}"'))
def step_server_parent(ctx: PipelineScenarioContext, span_id: str) -> None:
    assert ctx.server_span().parent_span_id == span_id


@then("the server span has error status")
def step_server_error(ctx: PipelineScenarioContext) -> None:
    assert ctx.server_span().status is SpanStatus.ERROR


# === Log Assertions ===
@then("every exported log has the server span's trace id")
def step_logs_trace(ctx: PipelineScenarioContext) -> None:
    trace_id = ctx.server_span().trace_id
    logs = ctx.flushed(SignalKind.LOGS)
    assert logs
    assert all(record.trace_id == trace_id for record in logs)


@then(parsers.parse('every exported log has field "{name}" equal to "{value}"'))
def step_logs_field(ctx: PipelineScenarioContext, name: str, value: str) -> None:
    assert all(record.fields[name] == value for record in ctx.flushed(SignalKind.LOGS))


@then(parsers.parse('the request log level is "{level}"'))
def step_request_log_level(ctx: PipelineScenarioContext, level: str) -> None:
    records = [
        r for r in ctx.flushed(SignalKind.LOGS) if r.template == "{method} {path} {status_code}"
    ]
    assert [r.level for r in records] == [level]


# === Metric Assertions ===
@then(parsers.parse('the collector receives metric "{name}" with total {total:d}'))
def step_metric_total(ctx: PipelineScenarioContext, name: str, total: int) -> None:
    points = [p for p in ctx.flushed(SignalKind.METRICS) if p.name == name]
    assert sum(p.value for p in points) == total


@then(parsers.parse('every exported signal has service name "{service_name}"'))
def step_signals_service(ctx: PipelineScenarioContext, service_name: str) -> None:
    for kind in SignalKind:
        for item in ctx.flushed(kind):
            assert item.resource.service_name == service_name
