"""Database access layer using psycopg2.

Provides:
- get_conn(): Open a connection from an explicit DSN (or DATABASE_URL)
- txn(): Context manager for short, safe transactions
- fetchone(): Query helper
"""

import os
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor
from psycopg2.extensions import parse_dsn


def _dsn_has_password(dsn: str) -> bool:
    try:
        return bool(parse_dsn(dsn).get("password"))
    except psycopg2.ProgrammingError:
        # Let connect() report the malformed DSN
        return True


def get_conn(dsn: str | None = None, password: str | None = None) -> PgConnection:
    """Open a new database connection.

    Args:
        dsn: libpq DSN or postgres:// URL. Defaults to DATABASE_URL.
        password: Applied only when the DSN carries no password. Defaults to
                  DB_PASSWORD (secret managers often inject it separately).

    Returns:
        psycopg2 connection object.

    Raises:
        RuntimeError: If no DSN is configured.
        psycopg2.Error: On connection failure.
    """
    dsn = dsn or os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    if password is None:
        password = os.environ.get("DB_PASSWORD")

    if password and not _dsn_has_password(dsn):
        return psycopg2.connect(dsn, password=password)
    return psycopg2.connect(dsn)


@contextmanager
def txn(
    conn: PgConnection | None = None,
    *,
    dsn: str | None = None,
    password: str | None = None,
) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, opens a new connection (from dsn/password) that is
    closed on exit. Commits on successful exit, rolls back on exception.

    Example:
        with txn(dsn=settings.database_url) as cur:
            cur.execute("SELECT 1")
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn(dsn, password)

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


def fetchone(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> tuple[Any, ...] | None:
    """Execute query and fetch one row."""
    cur.execute(query, params)
    return cur.fetchone()
