from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence
from urllib.parse import urlparse

from insider_tracker.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


# Arbitrary app-wide advisory lock ids (Postgres).
_SCHEMA_LOCK_ID = 2147483647
_INGESTION_LOCK_ID = 2147483646

# Same-process guard; the advisory lock covers other processes.
_INGESTION_THREAD_LOCK = threading.Lock()


def detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    scheme = urlparse(s).scheme.lower()
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    return "sqlite"


def _qmark_to_pct(sql: str) -> str:
    """Convert SQLite qmark placeholders (?) to psycopg2 placeholders (%s).

    Skips '?' inside single/double-quoted literals. Not a SQL parser, but enough
    for the statements in this package.
    """
    out: List[str] = []
    quote: str | None = None
    i = 0
    while i < len(sql):
        ch = sql[i]
        if ch == "%":
            # psycopg2 formats the whole string, literals included
            out.append("%%")
        elif ch in ("'", '"'):
            if quote is None:
                quote = ch
            elif quote == ch:
                # doubled quote inside a literal is an escape
                if i + 1 < len(sql) and sql[i + 1] == ch:
                    out.append(ch + ch)
                    i += 2
                    continue
                quote = None
            out.append(ch)
        elif ch == "?" and quote is None:
            out.append("%s")
        else:
            out.append(ch)
        i += 1
    return "".join(out)


class PGCursor:
    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return self

    def executemany(self, sql: str, seq_of_params: Sequence[Sequence[Any]]) -> "PGCursor":
        self._cur.executemany(_qmark_to_pct(sql), [tuple(x) for x in seq_of_params])
        return self

    def fetchone(self) -> Any:
        return self._cur.fetchone()

    def fetchall(self) -> Any:
        return self._cur.fetchall()

    @property
    def rowcount(self) -> int:
        return int(self._cur.rowcount or 0)

    def close(self) -> None:
        self._cur.close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._cur, name)


class PGConnection:
    """Makes a psycopg2 connection look enough like sqlite3 for this package."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        return PGCursor(self._conn.cursor()).execute(sql, params)

    def executemany(self, sql: str, seq_of_params: Sequence[Sequence[Any]]) -> PGCursor:
        return PGCursor(self._conn.cursor()).executemany(sql, seq_of_params)

    def cursor(self) -> PGCursor:
        return PGCursor(self._conn.cursor())

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


def dialect_of(conn: Any) -> str:
    return getattr(conn, "dialect", "sqlite")


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """Connect to SQLite or Postgres; commit on success, roll back on error.

    - SQLite: WAL + NORMAL sync, rows are sqlite3.Row.
    - Postgres: psycopg2 with RealDictCursor so rows behave like dicts.
    """
    dsn = (db_dsn or "").strip()
    dialect = detect_dialect(dsn)

    if dialect == "postgres":
        try:
            import psycopg2
            import psycopg2.extras
        except ImportError as e:
            raise RuntimeError(
                "Postgres selected but psycopg2 is not installed. "
                "Install insider-tracker[postgres] and try again."
            ) from e

        raw = psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor)
        conn = PGConnection(raw)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return

    # Support sqlite:///path style
    if dsn.lower().startswith("sqlite:///"):
        dsn = dsn[len("sqlite:///") :]

    if dsn != ":memory:":
        Path(dsn).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(dsn, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")  # 5s
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_dsn: str) -> None:
    """Create all tables and run lightweight migrations."""
    dialect = detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect}) at {db_dsn}")
    with connect(db_dsn) as conn:
        schema_sql = get_schema_sql(dialect)
        if dialect == "postgres":
            # One process runs DDL at a time
            conn.execute("SELECT pg_advisory_lock(?)", (_SCHEMA_LOCK_ID,))
            try:
                _exec_schema(conn, schema_sql, dialect=dialect)
            finally:
                conn.execute("SELECT pg_advisory_unlock(?)", (_SCHEMA_LOCK_ID,))
        else:
            _exec_schema(conn, schema_sql, dialect=dialect)

        _migrate(conn, dialect=dialect)


def _exec_schema(conn: Any, ddl: str, *, dialect: str) -> None:
    if dialect == "postgres":
        # Naive split is OK for our schema
        for stmt in [s.strip() for s in ddl.split(";") if s.strip()]:
            conn.execute(stmt)
        return
    conn.executescript(ddl)


def table_columns(conn: Any, table: str) -> List[str]:
    if dialect_of(conn) == "postgres":
        rows = conn.execute(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_schema='public' AND table_name=?
            ORDER BY ordinal_position
            """,
            (table,),
        ).fetchall()
        return [str(r["column_name"]) for r in rows]

    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return [str(r["name"]) for r in rows]


def _migrate(conn: Any, *, dialect: str) -> None:
    """Forward-only column additions for databases created by older versions."""
    cols = set(table_columns(conn, "insider_trades"))
    for col, ctype in (
        ("issuer_cik", "TEXT"),
        ("source_url", "TEXT"),
        ("industry", "TEXT"),
        ("current_price", "REAL" if dialect == "sqlite" else "DOUBLE PRECISION"),
        ("price_change_7d", "REAL" if dialect == "sqlite" else "DOUBLE PRECISION"),
    ):
        if col not in cols:
            _debug(f"Adding insider_trades.{col}")
            conn.execute(f"ALTER TABLE insider_trades ADD COLUMN {col} {ctype}")


def upsert_app_config(conn: Any, key: str, value: str) -> None:
    conn.execute(
        """
        INSERT INTO app_config (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
    )


def get_app_config(conn: Any, key: str) -> Optional[str]:
    row = conn.execute("SELECT value FROM app_config WHERE key=?", (key,)).fetchone()
    if row is None:
        return None
    return str(row["value"])


@contextmanager
def ingestion_lock(conn: Any) -> Iterator[bool]:
    """Yield True if this caller may run ingestion, False if another run holds the lock.

    Postgres: session-level advisory lock. SQLite: the in-process lock only; writes
    are already serialised by SQLite itself.
    """
    if not _INGESTION_THREAD_LOCK.acquire(blocking=False):
        yield False
        return

    pg = dialect_of(conn) == "postgres"
    try:
        if pg:
            row = conn.execute("SELECT pg_try_advisory_lock(?) AS ok", (_INGESTION_LOCK_ID,)).fetchone()
            if not row or not row["ok"]:
                yield False
                return
            try:
                yield True
            finally:
                conn.execute("SELECT pg_advisory_unlock(?)", (_INGESTION_LOCK_ID,))
        else:
            yield True
    finally:
        _INGESTION_THREAD_LOCK.release()
