"""Querying, validating and storing log entries."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .database import Database
from .models import LogEntry, ValidationError, parse_timestamp

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARN", "ERROR", "FATAL"})

_SELECT = (
    "SELECT id, service_name, log_level, message, timestamp, trace_id, span_id, metadata "
    "FROM logs WHERE 1=1"
)

_INSERT = (
    "INSERT INTO logs "
    "(service_name, log_level, message, timestamp, trace_id, span_id, metadata) "
    "VALUES (?, ?, ?, ?, ?, ?, ?)"
)


def _entry_from_row(row: sqlite3.Row) -> LogEntry:
    raw = row["metadata"]
    return LogEntry(
        id=row["id"],
        service_name=row["service_name"],
        log_level=row["log_level"],
        message=row["message"],
        timestamp=parse_timestamp(row["timestamp"]),
        trace_id=row["trace_id"],
        span_id=row["span_id"],
        metadata=json.loads(raw) if raw else {},
    )


def get_logs(
    database: Database,
    service_name: str = "",
    log_level: str = "",
    message_contains: str = "",
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    limit: int = 0,
    offset: int = 0,
) -> list[LogEntry]:
    """Log entries matching every given filter, newest first.

    Empty strings and ``None`` times mean "no filter". The message filter is a
    case-insensitive substring match. ``offset`` only applies with a positive ``limit``.
    """
    sql = _SELECT
    params: list[Any] = []

    if service_name:
        sql += " AND service_name = ?"
        params.append(service_name)
    if log_level:
        sql += " AND log_level = ?"
        params.append(log_level)
    if message_contains:
        sql += " AND message LIKE ?"
        params.append(f"%{message_contains}%")
    start = parse_timestamp(start_time)
    if start is not None:
        sql += " AND timestamp >= ?"
        params.append(start)
    end = parse_timestamp(end_time)
    if end is not None:
        sql += " AND timestamp <= ?"
        params.append(end)

    sql += " ORDER BY timestamp DESC"

    if limit > 0:
        sql += " LIMIT ?"
        params.append(limit)
        if offset > 0:
            sql += " OFFSET ?"
            params.append(offset)

    try:
        rows = database.query(sql, params)
    except sqlite3.Error as exc:
        logger.error("error fetching logs: %s", exc)
        raise

    entries = []
    for row in rows:
        try:
            entries.append(_entry_from_row(row))
        except ValueError as exc:
            logger.error("error reading log row: %s", exc)
    return entries


def validate_log_entry(entry: LogEntry) -> None:
    """Raise ValidationError if ``entry`` lacks required fields or has a bad level."""
    if not entry.service_name:
        raise ValidationError("service name is required")
    if not entry.message:
        raise ValidationError("message is required")
    if entry.log_level and entry.log_level not in VALID_LOG_LEVELS:
        raise ValidationError(f"invalid log level: {entry.log_level}")


def post_log(database: Database, entry: LogEntry) -> LogEntry:
    """Fill in defaults, store ``entry`` and set its new id; returns the entry."""
    if entry.timestamp is None:
        entry.timestamp = datetime.now(timezone.utc)
    entry.trace_id = entry.trace_id or None
    entry.span_id = entry.span_id or None
    if entry.metadata is None:
        entry.metadata = {}

    try:
        entry.id = database.insert_returning_id(
            _INSERT,
            (
                entry.service_name,
                entry.log_level,
                entry.message,
                entry.timestamp,
                entry.trace_id,
                entry.span_id,
                json.dumps(entry.metadata),
            ),
        )
    except sqlite3.Error as exc:
        logger.error("error inserting log: %s", exc)
        raise
    return entry