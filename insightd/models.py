"""Records handled by the service: log entries, endpoint metrics, traces and spans."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

ZERO_TIME = "0001-01-01T00:00:00Z"

_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?"
    r"(?:([Zz])|([+-])(\d{2}):(\d{2}))\Z"
)


class ValidationError(ValueError):
    """Raised when input data is malformed or fails validation."""


def _is_zero(ts: datetime) -> bool:
    return ts.utcoffset() == timedelta(0) and ts.replace(tzinfo=None) == datetime(1, 1, 1)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 string or datetime into an aware datetime.

    ``None`` and the zero time both mean "unset" and give ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        ts = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    elif isinstance(value, str):
        match = _RFC3339.match(value)
        if match is None:
            raise ValidationError(f"invalid timestamp: {value!r}")
        year, month, day, hour, minute, second = (int(match[i]) for i in range(1, 7))
        micro = int((match[7] or "")[:6].ljust(6, "0"))
        try:
            if match[8]:
                tz = timezone.utc
            else:
                offset = timedelta(hours=int(match[10]), minutes=int(match[11]))
                tz = timezone(-offset if match[9] == "-" else offset)
            ts = datetime(year, month, day, hour, minute, second, micro, tzinfo=tz)
        except ValueError as exc:
            raise ValidationError(f"invalid timestamp: {value!r}") from exc
    else:
        raise ValidationError(f"invalid timestamp: {value!r}")
    return None if _is_zero(ts) else ts


def format_timestamp(value: datetime | None) -> str:
    """Format a datetime as RFC 3339 with trailing fractional zeros trimmed."""
    if value is None:
        return ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    fraction = f"{value.microsecond:06d}".rstrip("0")
    if fraction:
        text += "." + fraction
    offset = value.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "-" if offset < timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValidationError(f"{what} must be a JSON object")
    return data


def _get_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"field {key!r} must be a string")
    return value


def _get_optional_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"field {key!r} must be a string")
    return value


def _get_int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"field {key!r} must be an integer")
    return value


def _get_float(data: Mapping[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"field {key!r} must be a number")
    return float(value)


def _get_time(data: Mapping[str, Any], key: str) -> datetime | None:
    try:
        return parse_timestamp(data.get(key))
    except ValidationError as exc:
        raise ValidationError(f"field {key!r}: {exc}") from exc


@dataclass
class LogEntry:
    """A single log line sent by a service."""

    id: int = 0
    service_name: str = ""
    log_level: str = ""
    message: str = ""
    timestamp: datetime | None = None
    trace_id: str | None = None
    span_id: str | None = None
    metadata: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> LogEntry:
        data = _require_mapping(data, "log entry")
        return cls(
            id=_get_int(data, "id"),
            service_name=_get_str(data, "service_name"),
            log_level=_get_str(data, "log_level"),
            message=_get_str(data, "message"),
            timestamp=_get_time(data, "timestamp"),
            trace_id=_get_optional_str(data, "trace_id"),
            span_id=_get_optional_str(data, "span_id"),
            metadata=data.get("metadata"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "service_name": self.service_name,
            "log_level": self.log_level,
            "message": self.message,
            "timestamp": format_timestamp(self.timestamp),
        }
        if self.trace_id is not None:
            result["trace_id"] = self.trace_id
        if self.span_id is not None:
            result["span_id"] = self.span_id
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result


@dataclass
class MetricSource:
    """The language and framework that produced a metric."""

    language: str = ""
    framework: str = ""
    version: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> MetricSource:
        data = _require_mapping(data, "source")
        return cls(
            language=_get_str(data, "language"),
            framework=_get_str(data, "framework"),
            version=_get_str(data, "version"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"language": self.language, "framework": self.framework, "version": self.version}


@dataclass
class EndpointMetric:
    """Timing and status of one request handled by a service endpoint."""

    id: int = 0
    service_name: str = ""
    path: str = ""
    method: str = ""
    status_code: int = 0
    duration: float = 0.0
    source: MetricSource = field(default_factory=MetricSource)
    environment: str = ""
    timestamp: datetime | None = None
    request_id: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> EndpointMetric:
        data = _require_mapping(data, "metric")
        source = data.get("source")
        return cls(
            id=_get_int(data, "id"),
            service_name=_get_str(data, "service_name"),
            path=_get_str(data, "path"),
            method=_get_str(data, "method"),
            status_code=_get_int(data, "status_code"),
            duration=_get_float(data, "duration_ms"),
            source=MetricSource() if source is None else MetricSource.from_dict(source),
            environment=_get_str(data, "environment"),
            timestamp=_get_time(data, "timestamp"),
            request_id=_get_str(data, "request_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "service_name": self.service_name,
            "path": self.path,
            "method": self.method,
            "status_code": self.status_code,
            "duration_ms": self.duration,
            "source": self.source.to_dict(),
            "environment": self.environment,
            "timestamp": format_timestamp(self.timestamp),
            "request_id": self.request_id,
        }


@dataclass
class Span:
    """A timed operation inside a trace."""

    id: str = ""
    trace_id: str = ""
    parent_id: str = ""
    service: str = ""
    operation: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: float = 0.0

    @classmethod
    def from_dict(cls, data: Any) -> Span:
        data = _require_mapping(data, "span")
        return cls(
            id=_get_str(data, "id"),
            trace_id=_get_str(data, "trace_id"),
            parent_id=_get_str(data, "parent_id"),
            service=_get_str(data, "service"),
            operation=_get_str(data, "operation"),
            start_time=_get_time(data, "start_time"),
            end_time=_get_time(data, "end_time"),
            duration=_get_float(data, "duration_ms"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trace_id": self.trace_id,
            "parent_id": self.parent_id,
            "service": self.service,
            "operation": self.operation,
            "start_time": format_timestamp(self.start_time),
            "end_time": format_timestamp(self.end_time),
            "duration_ms": self.duration,
        }


@dataclass
class Trace:
    """A request traced through a service."""

    id: str = ""
    service_name: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: float = 0.0

    @classmethod
    def from_dict(cls, data: Any) -> Trace:
        data = _require_mapping(data, "trace")
        return cls(
            id=_get_str(data, "id"),
            service_name=_get_str(data, "service_name"),
            start_time=_get_time(data, "start_time"),
            end_time=_get_time(data, "end_time"),
            duration=_get_float(data, "duration_ms"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "service_name": self.service_name,
            "start_time": format_timestamp(self.start_time),
            "end_time": format_timestamp(self.end_time),
            "duration_ms": self.duration,
        }