"""HTTP API of the service and the command that starts it."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sqlite3
import time
from typing import Any, Callable, Mapping

from flask import Flask, Response, g, request

from .database import Database, NotFoundError, init_db
from .logs import get_logs, post_log, validate_log_entry
from .metrics import get_metrics, post_metric, validate_metric
from .models import EndpointMetric, LogEntry, Span, Trace, ValidationError, parse_timestamp
from .tracing import (
    create_span,
    create_trace,
    end_span_request,
    end_trace_request,
    get_traces,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
DEFAULT_LIMIT = 100

_INT = re.compile(r"[+-]?[0-9]+")


def _parse_int(text: str | None) -> int | None:
    if text and _INT.fullmatch(text):
        return int(text)
    return None


def _parse_time(text: str | None):
    if not text:
        return None
    try:
        return parse_timestamp(text)
    except ValidationError:
        return None


def parse_list_params(args: Mapping[str, str]) -> dict[str, Any]:
    """Read ``start_time``, ``end_time``, ``limit`` and ``offset`` from query args.

    Malformed values fall back to the defaults: no time bound, a limit of 100
    and an offset of 0.
    """
    limit = _parse_int(args.get("limit"))
    offset = _parse_int(args.get("offset"))
    return {
        "start_time": _parse_time(args.get("start_time")),
        "end_time": _parse_time(args.get("end_time")),
        "limit": limit if limit is not None and limit > 0 else DEFAULT_LIMIT,
        "offset": offset if offset is not None and offset >= 0 else 0,
    }


def get_env_port(default_port: int = DEFAULT_PORT) -> int:
    """The port named by the PORT variable, or ``default_port`` if unset or invalid."""
    port = _parse_int(os.environ.get("PORT"))
    return default_port if port is None else port


def _json(payload: Any, status: int = 200) -> Response:
    return Response(json.dumps(payload) + "\n", status=status, mimetype="application/json")


def _json_list(items: list) -> Response:
    # An empty result is sent as null.
    return _json([item.to_dict() for item in items] or None)


def _error(message: str, status: int) -> Response:
    return Response(message + "\n", status=status, content_type="text/plain; charset=utf-8")


def _decode(parse: Callable[[Any], Any]) -> Any:
    return parse(json.loads(request.get_data(as_text=True)))


def create_app(database: Database) -> Flask:
    """Build the Flask application serving ``database``."""
    app = Flask(__name__)

    @app.before_request
    def _start_timer() -> None:
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_request(response: Response) -> Response:
        started = g.get("request_started")
        if started is not None:
            elapsed_ms = (time.perf_counter() - started) * 1000
            uri = request.full_path.rstrip("?")
            logger.info("%s %s %.3fms", request.method, uri, elapsed_ms)
        return response

    @app.get("/health")
    def health() -> Response:
        return Response("OK", status=200)

    @app.get("/metrics")
    def list_metrics() -> Response:
        args = request.args
        params = parse_list_params(args)
        try:
            metrics = get_metrics(
                database,
                service_name=args.get("service", ""),
                path=args.get("path", ""),
                method=args.get("method", ""),
                min_status=_parse_int(args.get("min_status")) or 0,
                max_status=_parse_int(args.get("max_status")) or 0,
                limit=params["limit"],
                offset=params["offset"],
            )
        except sqlite3.Error:
            return _error("Failed to fetch metrics", 500)
        return _json_list(metrics)

    @app.post("/metrics")
    def add_metric() -> Response:
        try:
            metric = _decode(EndpointMetric.from_dict)
        except ValueError as exc:
            logger.error("error decoding metric JSON: %s", exc)
            return _error("Invalid request body", 400)
        try:
            validate_metric(metric)
        except ValidationError as exc:
            return _error(str(exc), 400)
        try:
            post_metric(database, metric)
        except sqlite3.Error:
            return _error("Failed to save metric", 500)
        return _json(metric.to_dict(), 201)

    @app.get("/logs")
    def list_logs() -> Response:
        args = request.args
        params = parse_list_params(args)
        try:
            entries = get_logs(
                database,
                service_name=args.get("service", ""),
                log_level=args.get("level", ""),
                message_contains=args.get("message", ""),
                **params,
            )
        except sqlite3.Error:
            return _error("Failed to fetch logs", 500)
        return _json_list(entries)

    @app.post("/logs")
    def add_log() -> Response:
        try:
            entry = _decode(LogEntry.from_dict)
        except ValueError:
            return _error("Invalid request body", 400)
        try:
            validate_log_entry(entry)
        except ValidationError as exc:
            return _error(str(exc), 400)
        try:
            post_log(database, entry)
        except sqlite3.Error:
            return _error("Failed to save log", 500)
        return _json(entry.to_dict(), 201)

    @app.get("/traces")
    def list_traces() -> Response:
        params = parse_list_params(request.args)
        try:
            traces = get_traces(database, service_name=request.args.get("service", ""), **params)
        except sqlite3.Error:
            return _error("Error fetching traces", 500)
        return _json_list(traces)

    @app.post("/traces")
    def add_trace() -> Response:
        try:
            trace = _decode(Trace.from_dict)
        except ValueError as exc:
            logger.error("error decoding trace JSON: %s", exc)
            return _error("Invalid request body", 400)
        try:
            create_trace(database, trace)
        except ValidationError as exc:
            return _error(str(exc), 400)
        except sqlite3.Error as exc:
            logger.error("error storing trace: %s", exc)
            return _error("Failed to store trace", 500)
        return _json(trace.to_dict(), 201)

    @app.post("/traces/<trace_id>/end")
    def end_trace(trace_id: str) -> Response:
        try:
            trace = end_trace_request(database, trace_id)
        except ValidationError as exc:
            return _error(str(exc), 400)
        except NotFoundError:
            return _error("Trace not found", 404)
        except sqlite3.Error as exc:
            logger.error("error updating trace: %s", exc)
            return _error("Failed to update trace", 500)
        return _json(trace.to_dict())

    @app.get("/traces/<trace_id>/spans")
    def list_spans(trace_id: str) -> Response:
        try:
            spans = database.fetch_spans(trace_id)
        except sqlite3.Error as exc:
            logger.error("error fetching spans: %s", exc)
            return _error("Error fetching spans", 500)
        return _json_list(spans)

    @app.post("/spans")
    def add_span() -> Response:
        try:
            span = _decode(Span.from_dict)
        except ValueError as exc:
            logger.error("error decoding span JSON: %s", exc)
            return _error("Invalid request body", 400)
        try:
            create_span(database, span)
        except ValidationError as exc:
            return _error(str(exc), 400)
        except sqlite3.Error as exc:
            logger.error("error storing span: %s", exc)
            return _error("Failed to store span", 500)
        return _json(span.to_dict(), 201)

    @app.post("/spans/<span_id>/end")
    def end_span(span_id: str) -> Response:
        try:
            span = end_span_request(database, span_id)
        except ValidationError as exc:
            return _error(str(exc), 400)
        except NotFoundError:
            return _error("Span not found", 404)
        except sqlite3.Error as exc:
            logger.error("error updating span: %s", exc)
            return _error("Failed to update span", 500)
        return _json(span.to_dict())

    return app


def main(argv: list[str] | None = None) -> int:
    """Open the database and serve the API on the port named by PORT."""
    parser = argparse.ArgumentParser(prog="insightd", description="Collect logs, metrics and traces.")
    parser.add_argument("--env-file", default=".env", help="file with DB_NAME and other settings")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    try:
        database = init_db(args.env_file)
    except (FileNotFoundError, ConnectionError) as exc:
        logger.error("%s", exc)
        return 1

    port = get_env_port(DEFAULT_PORT)
    app = create_app(database)
    print(f"Server started on port {port}")
    try:
        app.run(host="0.0.0.0", port=port)
    finally:
        database.close()
    return 0