import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from insightd.database import Database, NotFoundError, init_db
from insightd.models import Span, Trace

UTC = timezone.utc
BASE = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def database():
    db = Database.connect()
    yield db
    db.close()


def test_store_and_fetch_trace(database):
    database.store_trace(Trace(id="t1", service_name="web", start_time=BASE))
    traces = database.fetch_traces("web")
    assert traces == [Trace(id="t1", service_name="web", start_time=BASE)]


def test_fetch_traces_newest_first_and_filtered(database):
    for i in range(3):
        database.store_trace(Trace(id=f"t{i}", service_name="web", start_time=BASE + timedelta(seconds=i)))
    database.store_trace(Trace(id="other", service_name="api", start_time=BASE))
    assert [t.id for t in database.fetch_traces("web")] == ["t2", "t1", "t0"]


def test_fetch_traces_orders_across_offsets(database):
    later_with_offset = datetime(2024, 3, 1, 13, 30, tzinfo=timezone(timedelta(hours=1)))
    database.store_trace(Trace(id="a", service_name="web", start_time=later_with_offset))
    database.store_trace(Trace(id="b", service_name="web", start_time=BASE))
    assert [t.id for t in database.fetch_traces("web")] == ["a", "b"]


def test_update_trace(database):
    trace = Trace(id="t1", service_name="web", start_time=BASE)
    database.store_trace(trace)
    trace.end_time = BASE + timedelta(seconds=2)
    trace.duration = 2000.0
    database.update_trace(trace)
    (stored,) = database.fetch_traces("web")
    assert stored.end_time == trace.end_time
    assert stored.duration == 2000.0


def test_duplicate_trace_raises(database):
    database.store_trace(Trace(id="t1", service_name="web", start_time=BASE))
    with pytest.raises(sqlite3.IntegrityError):
        database.store_trace(Trace(id="t1", service_name="web", start_time=BASE))


def test_store_and_fetch_span_by_id(database):
    span = Span(id="s1", trace_id="t1", parent_id="", service="db", operation="select", start_time=BASE)
    database.store_span(span)
    assert database.fetch_span_by_id("s1") == span


def test_fetch_span_missing(database):
    with pytest.raises(NotFoundError):
        database.fetch_span_by_id("missing")


def test_update_span(database):
    span = Span(id="s1", trace_id="t1", service="db", operation="select", start_time=BASE)
    database.store_span(span)
    span.end_time = BASE + timedelta(milliseconds=250)
    span.duration = 250.0
    database.update_span(span)
    stored = database.fetch_span_by_id("s1")
    assert stored.end_time == span.end_time
    assert stored.duration == 250.0


def test_fetch_spans_oldest_first(database):
    for i in (2, 0, 1):
        database.store_span(
            Span(id=f"s{i}", trace_id="t1", service="db", operation="op", start_time=BASE + timedelta(seconds=i))
        )
    database.store_span(Span(id="x", trace_id="t2", service="db", operation="op", start_time=BASE))
    assert [s.id for s in database.fetch_spans("t1")] == ["s0", "s1", "s2"]


def test_insert_returning_id_increases(database):
    sql = "INSERT INTO logs (service_name, message, timestamp) VALUES (?, ?, ?)"
    first = database.insert_returning_id(sql, ("svc", "one", BASE))
    second = database.insert_returning_id(sql, ("svc", "two", BASE))
    assert second == first + 1


def test_query_adapts_datetime_params(database):
    sql = "INSERT INTO logs (service_name, message, timestamp) VALUES (?, ?, ?)"
    database.insert_returning_id(sql, ("svc", "old", BASE))
    database.insert_returning_id(sql, ("svc", "new", BASE + timedelta(hours=1)))
    rows = database.query("SELECT message FROM logs WHERE timestamp >= ?", (BASE + timedelta(minutes=30),))
    assert [row["message"] for row in rows] == ["new"]


def test_closed_database_raises():
    db = Database.connect()
    db.close()
    with pytest.raises(sqlite3.Error):
        db.store_trace(Trace(id="t", service_name="web", start_time=BASE))


def test_connect_file_persists(tmp_path):
    path = tmp_path / "insight.db"
    with Database.connect(path) as db:
        db.store_trace(Trace(id="t1", service_name="web", start_time=BASE))
    with Database.connect(path) as db:
        assert [t.id for t in db.fetch_traces("web")] == ["t1"]


def test_init_db_reads_env_file(tmp_path, monkeypatch):
    monkeypatch.setenv("DB_NAME", "unused")
    monkeypatch.delenv("DB_NAME")
    db_path = tmp_path / "from_env.db"
    env_file = tmp_path / ".env"
    env_file.write_text(f"DB_NAME={db_path}\n")
    db = init_db(env_file)
    try:
        db.store_trace(Trace(id="t1", service_name="web", start_time=BASE))
    finally:
        db.close()
    assert db_path.is_file()


def test_init_db_environment_wins(tmp_path, monkeypatch):
    db_path = tmp_path / "from_environment.db"
    monkeypatch.setenv("DB_NAME", str(db_path))
    env_file = tmp_path / ".env"
    env_file.write_text(f"DB_NAME={tmp_path / 'ignored.db'}\n")
    init_db(env_file).close()
    assert db_path.is_file()
    assert not (tmp_path / "ignored.db").exists()


def test_init_db_missing_env_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        init_db(tmp_path / "absent.env")


def test_init_db_without_name(tmp_path, monkeypatch):
    monkeypatch.setenv("DB_NAME", "")
    env_file = tmp_path / ".env"
    env_file.write_text("DB_HOST=localhost\n")
    with pytest.raises(ConnectionError):
        init_db(env_file)