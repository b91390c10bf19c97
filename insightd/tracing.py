"""Querying, validating, creating and ending traces and spans."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .database import Database, NotFoundError
from .models import Span, Trace, ValidationError, parse_timestamp
from .observability import generate_uuid

logger = logging.getLogger(__name__)

_SELECT = "SELECT id, service_name, start_time, end_time, duration_ms FROM traces WHERE 1=1"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _elapsed_ms(start: datetime | None, end: datetime) -> float:
    if start is None:
        return 0.0
    return (end - _aware(start)).total_seconds() * 1000


def _trace_from_row(row: sqlite3.Row) -> Trace:
    return Trace(
        id=row["id"],
        service_name=row["service_name"],
        start_time=parse_timestamp(row["start_time"]),
        end_time=parse_timestamp(row["end_time"]),
        duration=row["duration_ms"] or 0.0,
    )


def get_traces(
    database: Database,
    service_name: str = "",
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    limit: int = 0,
    offset: int = 0,
) -> list[Trace]:
    """Traces matching every given filter, most recently started first.

    Both time bounds apply to the start time. ``offset`` only applies with a
    positive ``limit``.
    """
    sql = _SELECT
    params: list[Any] = []

    if service_name:
        sql += " AND service_name = ?"
        params.append(service_name)
    start = parse_timestamp(start_time)
    if start is not None:
        sql += " AND start_time >= ?"
        params.append(start)
    end = parse_timestamp(end_time)
    if end is not None:
        sql += " AND start_time <= ?"
        params.append(end)

    sql += " ORDER BY start_time DESC"

    if limit > 0:
        sql += " LIMIT ?"
        params.append(limit)
        if offset > 0:
            sql += " OFFSET ?"
            params.append(offset)

    try:
        rows = database.query(sql, params)
    except sqlite3.Error as exc:
        logger.error("error fetching traces: %s", exc)
        raise

    traces = []
    for row in rows:
        try:
            traces.append(_trace_from_row(row))
        except ValueError as exc:
            logger.error("error reading trace row: %s", exc)
    return traces


def _check_order(start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and _aware(end) < _aware(start):
        raise ValidationError("end time cannot be before start time")


def validate_trace(trace: Trace) -> None:
    """Raise ValidationError if ``trace`` lacks a service or ends before it starts."""
    if not trace.service_name:
        raise ValidationError("service name is required")
    _check_order(trace.start_time, trace.end_time)


def validate_span(span: Span) -> None:
    """Raise ValidationError if ``span`` is incomplete or ends before it starts."""
    if not span.service:
        raise ValidationError("service name is required")
    if not span.trace_id:
        raise ValidationError("trace ID is required")
    if not span.operation:
        raise ValidationError("operation is required")
    _check_order(span.start_time, span.end_time)


def create_trace(database: Database, trace: Trace) -> Trace:
    """Validate ``trace``, fill in its id and start time if unset, and store it."""
    validate_trace(trace)
    if not trace.id:
        trace.id = generate_uuid()
    if trace.start_time is None:
        trace.start_time = _now()
    database.store_trace(trace)
    return trace


def create_span(database: Database, span: Span) -> Span:
    """Validate ``span``, fill in its id and start time if unset, and store it."""
    validate_span(span)
    if not span.id:
        span.id = generate_uuid()
    if span.start_time is None:
        span.start_time = _now()
    database.store_span(span)
    return span


def end_trace_request(database: Database, trace_id: str) -> Trace:
    """End the most recently started trace now and store its duration.

    ``trace_id`` must be given, but the trace ended is always the latest one.
    Raises NotFoundError when there is no trace to end.
    """
    if not trace_id:
        raise ValidationError("Trace ID is required")
    try:
        traces = get_traces(database, limit=1)
    except sqlite3.Error as exc:
        raise NotFoundError("trace not found") from exc
    if not traces:
        raise NotFoundError("trace not found")

    trace = traces[0]
    trace.end_time = _now()
    trace.duration = _elapsed_ms(trace.start_time, trace.end_time)
    database.update_trace(trace)
    return trace


def end_span_request(database: Database, span_id: str) -> Span:
    """End the span with ``span_id`` now and store its duration in milliseconds."""
    if not span_id:
        raise ValidationError("Span ID is required")
    try:
        span = database.fetch_span_by_id(span_id)
    except sqlite3.Error as exc:
        raise NotFoundError(f"span {span_id!r} not found") from exc

    span.end_time = _now()
    span.duration = _elapsed_ms(span.start_time, span.end_time)
    database.update_span(span)
    return span