import contextlib
from datetime import datetime, timezone

import psycopg
import pytest
from psycopg_pool import PoolTimeout

from authstate.logging import get_logger
from authstate.service.errors import StoreUnavailableError
from authstate.storage.models import SessionRecord
from authstate.storage.postgres import PostgresStore


class FakeCursor:
    def __init__(self, rows):
        self.rows = rows

    def fetchone(self):
        return self.rows[0] if self.rows else None

    def fetchall(self):
        return list(self.rows)


class FakeConnection:
    def __init__(self, rows):
        self.rows = rows
        self.queries = []

    def execute(self, sql, params=None):
        self.queries.append((sql, params))
        return FakeCursor(self.rows)


class FakePool:
    def __init__(self, rows=None, error: Exception | None = None):
        self.conn = FakeConnection(rows or [])
        self.error = error

    @contextlib.contextmanager
    def connection(self):
        if self.error:
            raise self.error
        yield self.conn


def create_test_store(pool) -> PostgresStore:
    """Create a PostgresStore instance without a database."""
    store: PostgresStore = PostgresStore.__new__(PostgresStore)
    store.pool = pool
    store.dsn = "postgresql://test"
    store.logger = get_logger("test")
    return store


def test_session_lookup_maps_joined_row():
    expires = datetime(2030, 1, 1, 12, 0)
    pool = FakePool(
        rows=[{"token": "tok", "user_id": 42, "expires_at": expires, "status": "active"}]
    )
    store = create_test_store(pool)

    record = store.get_session_with_status("tok")

    assert record == SessionRecord(
        token="tok",
        user_id="42",
        expires_at=datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc),
        status="active",
    )
    sql, params = pool.conn.queries[0]
    assert "JOIN app_user" in sql
    assert params == ("tok",)


def test_missing_rows_return_none():
    store = create_test_store(FakePool(rows=[]))

    assert store.get_session_with_status("nope") is None
    assert store.get_user_status("nope") is None


def test_user_status_lookup():
    store = create_test_store(FakePool(rows=[{"status": "suspended"}]))

    assert store.get_user_status("u1") == "suspended"


@pytest.mark.parametrize(
    "error",
    [
        psycopg.OperationalError("server closed the connection"),
        psycopg.InterfaceError("connection already closed"),
        PoolTimeout("couldn't get a connection after 30 sec"),
    ],
)
def test_connectivity_errors_become_store_unavailable(error):
    store = create_test_store(FakePool(error=error))

    with pytest.raises(StoreUnavailableError) as excinfo:
        store.get_session_with_status("tok")

    assert excinfo.value.__cause__ is error
    assert excinfo.value.detail == {"operation": "get_session_with_status"}


def test_query_errors_are_not_masked():
    class BrokenConnection(FakeConnection):
        def execute(self, sql, params=None):
            raise psycopg.errors.UndefinedTable("relation does not exist")

    pool = FakePool()
    pool.conn = BrokenConnection([])
    store = create_test_store(pool)

    with pytest.raises(psycopg.errors.UndefinedTable):
        store.get_user_status("u1")


def test_schema_check_reports_missing_tables():
    store = create_test_store(FakePool(rows=[{"table_name": "app_user"}]))

    with pytest.raises(RuntimeError, match="auth_session"):
        store._verify_required_schema()


def test_schema_check_passes_when_tables_exist():
    store = create_test_store(
        FakePool(rows=[{"table_name": "app_user"}, {"table_name": "auth_session"}])
    )

    store._verify_required_schema()
