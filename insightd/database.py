"""SQLite storage for logs, metrics, traces and spans."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Sequence

from dotenv import load_dotenv

from .models import Span, Trace, ValidationError, parse_timestamp

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    service_name TEXT NOT NULL,
    log_level TEXT NOT NULL DEFAULT '',
    message TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    trace_id TEXT,
    span_id TEXT,
    metadata TEXT
);
CREATE TABLE IF NOT EXISTS metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    service_name TEXT NOT NULL,
    path TEXT NOT NULL,
    method TEXT NOT NULL,
    status_code INTEGER NOT NULL,
    duration REAL NOT NULL,
    language TEXT NOT NULL DEFAULT '',
    framework TEXT NOT NULL DEFAULT '',
    version TEXT NOT NULL DEFAULT '',
    environment TEXT NOT NULL DEFAULT '',
    timestamp TEXT NOT NULL,
    request_id TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS traces (
    id TEXT PRIMARY KEY,
    service_name TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT,
    duration_ms REAL
);
CREATE TABLE IF NOT EXISTS spans (
    id TEXT PRIMARY KEY,
    trace_id TEXT NOT NULL,
    parent_id TEXT,
    service TEXT NOT NULL,
    operation TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT,
    duration_ms REAL
);
"""

_SPAN_COLUMNS = "id, trace_id, parent_id, service, operation, start_time, end_time, duration_ms"


class NotFoundError(LookupError):
    """Raised when a requested record does not exist."""


def _to_db(value: Any) -> Any:
    """Store datetimes as fixed-width UTC text so they sort chronologically."""
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    v = value.astimezone(timezone.utc)
    return (
        f"{v.year:04d}-{v.month:02d}-{v.day:02d}T{v.hour:02d}:{v.minute:02d}:"
        f"{v.second:02d}.{v.microsecond:06d}Z"
    )


def _adapt(params: Iterable[Any]) -> list[Any]:
    return [_to_db(p) for p in params]


def _trace_from_row(row: sqlite3.Row) -> Trace:
    return Trace(
        id=row["id"],
        service_name=row["service_name"],
        start_time=parse_timestamp(row["start_time"]),
        end_time=parse_timestamp(row["end_time"]),
        duration=row["duration_ms"] or 0.0,
    )


def _span_from_row(row: sqlite3.Row) -> Span:
    return Span(
        id=row["id"],
        trace_id=row["trace_id"],
        parent_id=row["parent_id"] or "",
        service=row["service"],
        operation=row["operation"],
        start_time=parse_timestamp(row["start_time"]),
        end_time=parse_timestamp(row["end_time"]),
        duration=row["duration_ms"] or 0.0,
    )


class Database:
    """A thread-safe wrapper around one SQLite connection."""

    def __init__(self, connection: sqlite3.Connection):
        self._conn = connection
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()

    @classmethod
    def connect(cls, path: str | os.PathLike = ":memory:") -> Database:
        """Open the database at ``path`` and make sure its tables exist."""
        database = cls(sqlite3.connect(str(path), check_same_thread=False))
        database.create_schema()
        return database

    def create_schema(self) -> None:
        with self._lock:
            self._conn.executescript(_SCHEMA)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a SELECT and return all rows."""
        with self._lock:
            return self._conn.execute(sql, _adapt(params)).fetchall()

    def insert_returning_id(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run an INSERT and return the id of the new row."""
        with self._lock, self._conn:
            return self._conn.execute(sql, _adapt(params)).lastrowid

    def _execute(self, sql: str, params: Sequence[Any], action: str) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(sql, _adapt(params))
        except sqlite3.Error as exc:
            logger.error("failed to %s: %s", action, exc)
            raise

    def store_trace(self, trace: Trace) -> None:
        self._execute(
            "INSERT INTO traces (id, service_name, start_time) VALUES (?, ?, ?)",
            (trace.id, trace.service_name, trace.start_time),
            "store trace",
        )

    def update_trace(self, trace: Trace) -> None:
        self._execute(
            "UPDATE traces SET end_time = ?, duration_ms = ? WHERE id = ?",
            (trace.end_time, trace.duration, trace.id),
            "update trace",
        )

    def fetch_traces(self, service: str) -> list[Trace]:
        """Traces of one service, newest first."""
        rows = self.query(
            "SELECT id, service_name, start_time, end_time, duration_ms FROM traces "
            "WHERE service_name = ? ORDER BY start_time DESC",
            (service,),
        )
        traces = []
        for row in rows:
            try:
                traces.append(_trace_from_row(row))
            except ValidationError as exc:
                logger.error("error reading trace row: %s", exc)
        return traces

    def fetch_span_by_id(self, span_id: str) -> Span:
        rows = self.query(f"SELECT {_SPAN_COLUMNS} FROM spans WHERE id = ?", (span_id,))
        if not rows:
            raise NotFoundError(f"span {span_id!r} not found")
        return _span_from_row(rows[0])

    def store_span(self, span: Span) -> None:
        self._execute(
            "INSERT INTO spans (id, trace_id, parent_id, service, operation, start_time) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (span.id, span.trace_id, span.parent_id, span.service, span.operation, span.start_time),
            "store span",
        )

    def update_span(self, span: Span) -> None:
        self._execute(
            "UPDATE spans SET end_time = ?, duration_ms = ? WHERE id = ?",
            (span.end_time, span.duration, span.id),
            "update span",
        )

    def fetch_spans(self, trace_id: str) -> list[Span]:
        """Spans of one trace, oldest first."""
        rows = self.query(
            f"SELECT {_SPAN_COLUMNS} FROM spans WHERE trace_id = ? ORDER BY start_time",
            (trace_id,),
        )
        spans = []
        for row in rows:
            try:
                spans.append(_span_from_row(row))
            except ValidationError as exc:
                logger.error("error reading span row: %s", exc)
        return spans


def init_db(env_file: str | os.PathLike = ".env") -> Database:
    """Load settings from ``env_file`` and open the database named by DB_NAME.

    Variables already present in the environment take precedence.
    """
    path = Path(env_file)
    if not path.is_file():
        raise FileNotFoundError(f"error loading {path} file")
    load_dotenv(path)
    name = os.environ.get("DB_NAME", "")
    if not name:
        raise ConnectionError("database is not reachable: DB_NAME is not set")
    try:
        database = Database.connect(name)
    except sqlite3.Error as exc:
        raise ConnectionError(f"database is not reachable: {exc}") from exc
    logger.info("connected to database %s", name)
    return database