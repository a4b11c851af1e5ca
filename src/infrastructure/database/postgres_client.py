"""PostgreSQL client for local development.

Serves the profiles table from a local PostgreSQL database instead of Supabase.
The local schema is expected to carry the same primary key on ``profiles.id``
so that duplicate inserts fail exactly as they do against the hosted backend.
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Generator

import psycopg2
from psycopg2 import errorcodes, pool
from psycopg2.extras import RealDictCursor

from src.domain.exceptions import (
    ProfileAccessError,
    ProfileBackendError,
    ProfileConflictError,
    ProfileError,
)


def translate_pg_error(exc: psycopg2.Error) -> ProfileError:
    """Map a psycopg2 error onto the profile error taxonomy."""
    code = getattr(exc, "pgcode", None)
    if code == errorcodes.UNIQUE_VIOLATION:
        return ProfileConflictError(f"Profile already exists: {exc}")
    if code == errorcodes.INSUFFICIENT_PRIVILEGE:
        return ProfileAccessError(f"Permission denied: {exc}")
    return ProfileBackendError(f"PostgreSQL error ({code}): {exc}")


class PostgresClient:
    """PostgreSQL database client with connection pooling."""

    def __init__(self) -> None:
        self.enabled = os.getenv("USE_LOCAL_DB", "0") == "1"
        self._pool: Any = None

        if self.enabled:
            try:
                self._pool = pool.SimpleConnectionPool(
                    minconn=1,
                    maxconn=int(os.getenv("POSTGRES_POOL_MAX", "10")),
                    host=os.getenv("POSTGRES_HOST", "localhost"),
                    port=int(os.getenv("POSTGRES_PORT", "5432")),
                    database=os.getenv("POSTGRES_DB", "campus_hub"),
                    user=os.getenv("POSTGRES_USER", "campus_hub"),
                    password=os.getenv("POSTGRES_PASSWORD", "campus_hub_dev_password"),
                )
            except psycopg2.Error as exc:  # pragma: no cover
                raise RuntimeError(f"Failed to initialize PostgreSQL connection pool: {exc}") from exc

    @contextmanager
    def get_cursor(self) -> Generator[Any, None, None]:
        """Yield a dict cursor inside a transaction.

        The transaction commits when the block exits cleanly and rolls back
        otherwise; the connection always goes back to the pool.

        Raises:
            RuntimeError: If the local database is not enabled.
        """
        if not self.enabled or self._pool is None:
            raise RuntimeError("Local PostgreSQL database is not enabled")

        conn = self._pool.getconn()
        try:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def fetch_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        """Run a query and return the first row, or None when there is none.

        Raises:
            ProfileError: Translated from the driver error.
        """
        try:
            with self.get_cursor() as cursor:
                cursor.execute(query, params)
                row = cursor.fetchone()
                return dict(row) if row else None
        except psycopg2.Error as exc:
            raise translate_pg_error(exc) from exc

    def close(self) -> None:
        if self._pool:
            self._pool.closeall()


_POSTGRES_CLIENT: PostgresClient | None = None


def get_postgres_client() -> PostgresClient | None:
    """Return the shared client when USE_LOCAL_DB=1, otherwise None."""
    global _POSTGRES_CLIENT
    if os.getenv("USE_LOCAL_DB", "0") != "1":
        return None
    if _POSTGRES_CLIENT is None:
        _POSTGRES_CLIENT = PostgresClient()
    return _POSTGRES_CLIENT
