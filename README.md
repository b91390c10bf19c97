# insightd

`insightd` is a small observability service. Applications send it their
structured logs, per-endpoint request metrics, traces and spans as JSON over
HTTP. It stores them in a SQLite database, and you can query them back through
the same HTTP interface.

## Running the server

```
insightd
insightd --env-file path/to/settings.env
```

When it starts, the server loads settings from a `.env` file in the working
directory, or from the file given with `--env-file`. If that file does not
exist, the command logs an error and exits with status 1. Variables that are
already set in the environment take precedence over those in the file.

- `DB_NAME` is the path of the SQLite database file. It is required. The file
  and its tables are created if they do not exist.
- `PORT` is the port to listen on. When it is unset or not an integer, the
  server uses 8080.

Example `.env`:

```
DB_NAME=insight.db
PORT=8080
```

The server listens on all interfaces. Each request is logged with its method,
URI and handling time in milliseconds.

## HTTP interface

| Method | Path                        | Purpose                              |
|--------|-----------------------------|--------------------------------------|
| GET    | `/health`                   | Liveness check, answers `OK`         |
| GET    | `/logs`                     | List stored log entries              |
| POST   | `/logs`                     | Store a log entry                    |
| GET    | `/metrics`                  | List stored endpoint metrics         |
| POST   | `/metrics`                  | Store an endpoint metric             |
| GET    | `/traces`                   | List traces                          |
| POST   | `/traces`                   | Start a trace                        |
| POST   | `/traces/<trace_id>/end`    | End the latest trace (see below)     |
| GET    | `/traces/<trace_id>/spans`  | List the spans of a trace            |
| POST   | `/spans`                    | Start a span                         |
| POST   | `/spans/<span_id>/end`      | End a span and record its duration   |

A successful `POST` that stores a record answers `201 Created` with that
record, including the identifier it was given. The responses to the two
`/end` endpoints use `200`.

Errors are returned as plain text:

- A body that is not valid JSON, or that has fields of the wrong type, gives
  `400 Invalid request body`.
- A record that fails validation gives `400` with a short message, for example
  `service name is required`.
- An unknown span or trace gives `404`.
- A storage failure gives `500`.

Timestamps are RFC 3339. In responses, an unset time is written as
`0001-01-01T00:00:00Z`.

### Listing

`/logs`, `/metrics` and `/traces` return records newest first. They accept
`limit` (default 100; only positive values are used) and `offset` (default 0).
Malformed values are ignored and the defaults apply. An empty result is
returned as `null`.

- `/logs` filters on `service`, `level`, `message` and `start_time` /
  `end_time` (RFC 3339). `message` is a substring match that ignores case for
  ASCII letters.
- `/metrics` filters on `service`, `path`, `method`, `min_status` and
  `max_status`. `path` is a case-sensitive substring match. Status bounds of
  zero or less are ignored.
- `/traces` filters on `service` and `start_time` / `end_time`. Both bounds are
  compared with the trace start time.

`/traces/<trace_id>/spans` returns every span of the trace, oldest first.

### Log entries

```json
{
  "service_name": "checkout",
  "log_level": "ERROR",
  "message": "payment declined",
  "trace_id": "4bf92f35-0000-4000-8000-000000000001",
  "metadata": {"order": 1234}
}
```

Rules for log entries:

- `service_name` and `message` are required.
- `log_level`, when given, must be one of `DEBUG`, `INFO`, `WARN`, `ERROR` or
  `FATAL`.
- A missing timestamp is set to the time of arrival.
- Missing metadata is stored as `{}`.
- An empty `trace_id` or `span_id` is dropped from the stored record.

### Endpoint metrics

```json
{
  "service_name": "checkout",
  "path": "/api/orders",
  "method": "POST",
  "status_code": 201,
  "duration_ms": 42.5,
  "source": {"language": "python", "framework": "flask", "version": "3.0"},
  "environment": "staging",
  "request_id": "req-0001"
}
```

Rules for metrics:

- `service_name`, `path`, `method` and `source.language` are required.
- The method must be one of `GET`, `POST`, `PUT`, `DELETE`, `PATCH`, `OPTIONS`
  or `HEAD`.
- The status code must lie between 100 and 599.
- The duration must not be negative.
- A missing timestamp is set to the time of arrival.

### Traces and spans

A trace needs a `service_name`. A span needs `service`, `trace_id` and
`operation`, and may name a `parent_id`. A missing identifier is filled in
with a random UUID, and a missing start time is set to the current time. An
end time given at creation may not come before the start time.

`POST /spans/<span_id>/end` sets the span's end time to now and records its
duration in milliseconds.

`POST /traces/<trace_id>/end` requires a trace id in the path, but it does not
use that id to pick the trace. It always ends the most recently started trace,
setting its end time to now and recording its duration.

## Using it from Python

You can build the application around any database handle, which is useful
for embedding and testing:

```python
from insightd.app import create_app
from insightd.database import Database

database = Database.connect(":memory:")   # creates the tables
app = create_app(database)
```

The query functions can also be called directly:

- `insightd.logs.get_logs` and `insightd.logs.post_log`
- `insightd.metrics.get_metrics` and `insightd.metrics.post_metric`
- `insightd.tracing.get_traces`, `create_trace` and `create_span`

You can record traces and spans without going through HTTP. With these
helpers, storage errors are logged and not raised:

```python
from insightd.observability import start_trace, start_span, end_span, end_trace

trace = start_trace(database, "checkout")
span = start_span(database, trace.id, "", "checkout", "charge-card")
end_span(database, span)
end_trace(database, trace)
```

## Limitations

- Storage is a single local SQLite file. There is no support for a separate
  database server.
- The HTTP interface has no authentication.
- Records are never deleted or expired.