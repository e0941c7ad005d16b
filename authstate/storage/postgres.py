from __future__ import annotations

import contextlib
from typing import Any, Iterator, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from authstate.logging import get_logger
from authstate.service.errors import StoreUnavailableError
from authstate.storage.models import SessionRecord, as_utc

# Errors that mean the database could not be reached or stopped answering.
_UNAVAILABLE_ERRORS = (psycopg.OperationalError, psycopg.InterfaceError, PoolTimeout)

_REQUIRED_TABLES = ("app_user", "auth_session")


class PostgresStore:
    """Thin Postgres-backed store for session and account lookups."""

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": True},
            open=True,
        )
        self._verify_required_schema()

    def _connect(self):
        return self.pool.connection()

    @contextlib.contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Translate connectivity failures into ``StoreUnavailableError``."""

        try:
            yield
        except _UNAVAILABLE_ERRORS as exc:
            self.logger.error(
                "durable_store_unavailable",
                operation=operation,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise StoreUnavailableError(
                "durable store unavailable", detail={"operation": operation}
            ) from exc

    def _verify_required_schema(self) -> None:
        """Ensure the tables this store reads exist before serving requests."""

        with self._guard("verify_schema"), self._connect() as conn:
            rows = conn.execute(
                """
                SELECT table_name FROM information_schema.tables
                WHERE table_schema = current_schema() AND table_name = ANY(%s)
                """,
                (list(_REQUIRED_TABLES),),
            ).fetchall()
        present = {row["table_name"] for row in rows}
        missing = [name for name in _REQUIRED_TABLES if name not in present]
        if missing:
            raise RuntimeError(
                f"Missing required tables: {', '.join(missing)}; apply sql/001_auth_state.sql"
            )

    def get_session_with_status(self, token: str) -> Optional[SessionRecord]:
        with self._guard("get_session_with_status"), self._connect() as conn:
            row = conn.execute(
                """
                SELECT s.token, s.user_id, s.expires_at, u.status
                FROM auth_session s
                JOIN app_user u ON u.id = s.user_id
                WHERE s.token = %s
                """,
                (token,),
            ).fetchone()
        if not row:
            return None
        return _record_from_row(row)

    def get_user_status(self, user_id: str) -> Optional[str]:
        with self._guard("get_user_status"), self._connect() as conn:
            row = conn.execute(
                "SELECT status FROM app_user WHERE id = %s", (user_id,)
            ).fetchone()
        if not row:
            return None
        return row["status"]

    def close(self) -> None:
        self.pool.close()


def _record_from_row(row: dict[str, Any]) -> SessionRecord:
    return SessionRecord(
        token=str(row["token"]),
        user_id=str(row["user_id"]),
        expires_at=as_utc(row["expires_at"]),
        status=row["status"],
    )
