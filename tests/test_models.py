from datetime import datetime, timedelta, timezone

import pytest

from insightd.models import (
    ZERO_TIME,
    EndpointMetric,
    LogEntry,
    MetricSource,
    Span,
    Trace,
    ValidationError,
    format_timestamp,
    parse_timestamp,
)

UTC = timezone.utc


def test_parse_utc_timestamp():
    assert parse_timestamp("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


def test_parse_offset_timestamp_keeps_offset():
    ts = parse_timestamp("2024-01-02T03:04:05+02:00")
    assert ts.utcoffset() == timedelta(hours=2)
    assert ts == datetime(2024, 1, 2, 1, 4, 5, tzinfo=UTC)


def test_parse_fraction_truncated_to_microseconds():
    ts = parse_timestamp("2024-01-02T03:04:05.123456789Z")
    assert ts.microsecond == 123456


def test_parse_none_and_zero_time_are_unset():
    assert parse_timestamp(None) is None
    assert parse_timestamp(ZERO_TIME) is None


def test_parse_naive_datetime_assumed_utc():
    assert parse_timestamp(datetime(2024, 5, 6, 7, 8, 9)).tzinfo == UTC


@pytest.mark.parametrize(
    "value", ["", "yesterday", "2024-01-02", "2024-13-02T03:04:05Z", "2024-01-02T03:04:05", 42]
)
def test_parse_rejects_invalid(value):
    with pytest.raises(ValidationError):
        parse_timestamp(value)


def test_format_trims_fraction():
    assert format_timestamp(datetime(2024, 1, 2, 3, 4, 5, 500000, tzinfo=UTC)) == "2024-01-02T03:04:05.5Z"


def test_format_none_is_zero_time():
    assert format_timestamp(None) == ZERO_TIME


@pytest.mark.parametrize(
    "text",
    ["2024-01-02T03:04:05Z", "2024-01-02T03:04:05.25-05:30", "1999-12-31T23:59:59.000001+01:00"],
)
def test_format_parse_round_trip(text):
    assert format_timestamp(parse_timestamp(text)) == text


def test_log_entry_round_trip():
    data = {
        "id": 7,
        "service_name": "checkout",
        "log_level": "INFO",
        "message": "order placed",
        "timestamp": "2024-01-02T03:04:05Z",
        "trace_id": "t-1",
        "span_id": "s-1",
        "metadata": {"order": 12},
    }
    assert LogEntry.from_dict(data).to_dict() == data


def test_log_entry_omits_empty_optionals():
    result = LogEntry.from_dict({"service_name": "svc", "message": "hi"}).to_dict()
    assert "trace_id" not in result
    assert "span_id" not in result
    assert "metadata" not in result
    assert result["timestamp"] == ZERO_TIME


def test_log_entry_null_string_field_is_empty():
    assert LogEntry.from_dict({"message": None}).message == ""


@pytest.mark.parametrize(
    "data",
    [
        {"service_name": 3},
        {"id": "1"},
        {"id": 1.5},
        {"id": True},
        {"timestamp": "not-a-time"},
        {"trace_id": 5},
    ],
)
def test_log_entry_rejects_bad_types(data):
    with pytest.raises(ValidationError):
        LogEntry.from_dict(data)


def test_from_dict_requires_object():
    with pytest.raises(ValidationError):
        LogEntry.from_dict(["not", "an", "object"])


def test_metric_round_trip():
    data = {
        "id": 3,
        "service_name": "api",
        "path": "/users",
        "method": "GET",
        "status_code": 200,
        "duration_ms": 12.5,
        "source": {"language": "go", "framework": "mux", "version": "1.0"},
        "environment": "prod",
        "timestamp": "2024-01-02T03:04:05Z",
        "request_id": "req-1",
    }
    metric = EndpointMetric.from_dict(data)
    assert metric.source == MetricSource("go", "mux", "1.0")
    assert metric.to_dict() == data


def test_metric_integer_duration_accepted():
    assert EndpointMetric.from_dict({"duration_ms": 4}).duration == 4.0


def test_metric_missing_source_defaults():
    assert EndpointMetric.from_dict({}).source == MetricSource()


@pytest.mark.parametrize("data", [{"duration_ms": "fast"}, {"source": "go"}, {"status_code": "200"}])
def test_metric_rejects_bad_types(data):
    with pytest.raises(ValidationError):
        EndpointMetric.from_dict(data)


def test_span_round_trip():
    data = {
        "id": "s1",
        "trace_id": "t1",
        "parent_id": "p1",
        "service": "db",
        "operation": "select",
        "start_time": "2024-01-02T03:04:05Z",
        "end_time": "2024-01-02T03:04:06Z",
        "duration_ms": 1000.0,
    }
    assert Span.from_dict(data).to_dict() == data


def test_trace_round_trip():
    data = {
        "id": "t1",
        "service_name": "web",
        "start_time": "2024-01-02T03:04:05Z",
        "end_time": ZERO_TIME,
        "duration_ms": 0.0,
    }
    trace = Trace.from_dict(data)
    assert trace.end_time is None
    assert trace.to_dict() == data