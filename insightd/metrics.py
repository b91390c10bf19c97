"""Querying, validating and storing endpoint metrics."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .database import Database
from .models import EndpointMetric, MetricSource, ValidationError, parse_timestamp

logger = logging.getLogger(__name__)

VALID_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"})

_SELECT = (
    "SELECT id, service_name, path, method, status_code, duration, "
    "language, framework, version, environment, timestamp, request_id "
    "FROM metrics WHERE 1=1"
)

_INSERT = (
    "INSERT INTO metrics "
    "(service_name, path, method, status_code, duration, language, framework, version, "
    "environment, timestamp, request_id) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)

# LIKE wildcards become GLOB wildcards; GLOB's own specials are matched literally.
_LIKE_TO_GLOB = {"%": "*", "_": "?", "*": "[*]", "?": "[?]", "[": "[[]"}


def _like_to_glob(pattern: str) -> str:
    """Turn a LIKE pattern into an equivalent case-sensitive GLOB pattern."""
    return "".join(_LIKE_TO_GLOB.get(ch, ch) for ch in pattern)


def _metric_from_row(row: sqlite3.Row) -> EndpointMetric:
    return EndpointMetric(
        id=row["id"],
        service_name=row["service_name"],
        path=row["path"],
        method=row["method"],
        status_code=row["status_code"],
        duration=row["duration"],
        source=MetricSource(
            language=row["language"],
            framework=row["framework"],
            version=row["version"],
        ),
        environment=row["environment"],
        timestamp=parse_timestamp(row["timestamp"]),
        request_id=row["request_id"],
    )


def get_metrics(
    database: Database,
    service_name: str = "",
    path: str = "",
    method: str = "",
    min_status: int = 0,
    max_status: int = 0,
    limit: int = 0,
    offset: int = 0,
) -> list[EndpointMetric]:
    """Metrics matching every given filter, newest first.

    ``path`` is a case-sensitive LIKE substring pattern. Status bounds of zero or
    less are ignored, as is ``offset`` without a positive ``limit``.
    """
    sql = _SELECT
    params: list[Any] = []

    if service_name:
        sql += " AND service_name = ?"
        params.append(service_name)
    if path:
        sql += " AND path GLOB ?"
        params.append(_like_to_glob(f"%{path}%"))
    if method:
        sql += " AND method = ?"
        params.append(method)
    if min_status > 0:
        sql += " AND status_code >= ?"
        params.append(min_status)
    if max_status > 0:
        sql += " AND status_code <= ?"
        params.append(max_status)

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
        logger.error("error fetching metrics: %s", exc)
        raise

    metrics = []
    for row in rows:
        try:
            metrics.append(_metric_from_row(row))
        except ValueError as exc:
            logger.error("error reading metric row: %s", exc)
    return metrics


def validate_metric(metric: EndpointMetric) -> None:
    """Raise ValidationError if ``metric`` is incomplete or out of range."""
    if not metric.service_name:
        raise ValidationError("service name is required")
    if not metric.path:
        raise ValidationError("path is required")
    if not metric.method:
        raise ValidationError("method is required")
    if metric.method not in VALID_METHODS:
        raise ValidationError("invalid HTTP method")
    if not 100 <= metric.status_code <= 599:
        raise ValidationError("status code must be between 100 and 599")
    if metric.duration < 0:
        raise ValidationError("duration cannot be negative")
    if not metric.source.language:
        raise ValidationError("source language is required")


def post_metric(database: Database, metric: EndpointMetric) -> EndpointMetric:
    """Fill in the timestamp if unset, store ``metric`` and set its new id."""
    if metric.timestamp is None:
        metric.timestamp = datetime.now(timezone.utc)

    try:
        metric.id = database.insert_returning_id(
            _INSERT,
            (
                metric.service_name,
                metric.path,
                metric.method,
                metric.status_code,
                metric.duration,
                metric.source.language,
                metric.source.framework,
                metric.source.version,
                metric.environment,
                metric.timestamp,
                metric.request_id,
            ),
        )
    except sqlite3.Error as exc:
        logger.error("error inserting metric: %s", exc)
        raise
    return metric