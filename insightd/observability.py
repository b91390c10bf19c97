"""Helpers for recording traces and spans from inside the service."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone

from .database import Database
from .models import Span, Trace

logger = logging.getLogger(__name__)


def generate_uuid() -> str:
    """A new random identifier in canonical UUID form."""
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(start: datetime | None, end: datetime) -> float:
    if start is None:
        return 0.0
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    return (end - start).total_seconds() * 1000


def start_span(database: Database, trace_id: str, parent_id: str, service: str, operation: str) -> Span:
    """Create and store a span starting now; storage failures are only logged."""
    span = Span(
        id=generate_uuid(),
        trace_id=trace_id,
        parent_id=parent_id,
        service=service,
        operation=operation,
        start_time=_now(),
    )
    try:
        database.store_span(span)
    except sqlite3.Error as exc:
        logger.error("error storing span: %s", exc)
    return span


def end_span(database: Database, span: Span) -> None:
    """Mark ``span`` as ended now and record its duration in milliseconds."""
    span.end_time = _now()
    span.duration = _elapsed_ms(span.start_time, span.end_time)
    try:
        database.update_span(span)
    except sqlite3.Error as exc:
        logger.error("error updating span: %s", exc)


def start_trace(database: Database, service_name: str) -> Trace:
    """Create and store a trace starting now; storage failures are only logged."""
    trace = Trace(id=generate_uuid(), service_name=service_name, start_time=_now())
    try:
        database.store_trace(trace)
    except sqlite3.Error as exc:
        logger.error("error storing trace: %s", exc)
    return trace


def end_trace(database: Database, trace: Trace) -> None:
    """Mark ``trace`` as ended now and record its duration in milliseconds."""
    trace.end_time = _now()
    trace.duration = _elapsed_ms(trace.start_time, trace.end_time)
    try:
        database.update_trace(trace)
    except sqlite3.Error as exc:
        logger.error("error updating trace: %s", exc)