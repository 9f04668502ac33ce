"""Database schema for the insider trade tracker.

SQLite is the default engine; Postgres is supported for deployments with a
separate read-only role for presentation layers.

Dates are ISO-8601 TEXT (YYYY-MM-DD for filing/trade dates, UTC 'Z' timestamps
for bookkeeping), so range filters compare lexicographically.

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types + autoincrement).
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- One row per non-derivative Form 4 transaction line.
-- The UNIQUE constraint is the natural key: re-ingesting a filing upserts in place.
CREATE TABLE IF NOT EXISTS insider_trades (
    trade_id INTEGER PRIMARY KEY AUTOINCREMENT,
    filing_date TEXT NOT NULL,
    trade_date TEXT NOT NULL,
    ticker TEXT NOT NULL,
    company_name TEXT,
    issuer_cik TEXT,
    industry TEXT,
    insider_name TEXT NOT NULL,
    insider_title TEXT,
    transaction_type TEXT NOT NULL,
    price REAL NOT NULL,
    quantity BIGINT NOT NULL CHECK (quantity >= 0),
    shares_owned_after BIGINT NOT NULL DEFAULT 0 CHECK (shares_owned_after >= 0),
    delta_ownership REAL NOT NULL DEFAULT 0,
    transaction_value REAL NOT NULL CHECK (transaction_value > 0),

    -- Enrichment (nullable; filled after persistence)
    current_price REAL,
    price_change_7d REAL,

    -- Cluster flags (owned by the cluster detector)
    is_cluster INTEGER NOT NULL DEFAULT 0,
    cluster_size INTEGER NOT NULL DEFAULT 1 CHECK (cluster_size >= 1),

    source_url TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,

    UNIQUE (filing_date, trade_date, ticker, insider_name, transaction_type, transaction_value)
);
CREATE INDEX IF NOT EXISTS idx_trades_filing_date ON insider_trades (filing_date);
CREATE INDEX IF NOT EXISTS idx_trades_ticker_type ON insider_trades (ticker, transaction_type, filing_date);
CREATE INDEX IF NOT EXISTS idx_trades_cluster ON insider_trades (is_cluster, filing_date);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # Types
    out = re.sub(r"\bREAL\b", "DOUBLE PRECISION", out)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    out = re.sub(r"\bAUTOINCREMENT\b", "", out, flags=re.IGNORECASE)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
