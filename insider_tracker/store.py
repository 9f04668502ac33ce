from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set

from insider_tracker.models import TradeKey, TradeRecord, row_to_trade
from insider_tracker.util.time import utcnow_iso


def _debug(msg: str) -> None:
    print(f"[store] {msg}")


class PersistenceError(RuntimeError):
    """A batch write failed and was rolled back."""


# Columns that point updates may touch. Natural-key columns are never updated in place.
MUTABLE_COLUMNS = frozenset(
    {
        "company_name",
        "industry",
        "current_price",
        "price_change_7d",
        "is_cluster",
        "cluster_size",
    }
)

_TRADE_COLUMNS = (
    "filing_date",
    "trade_date",
    "ticker",
    "company_name",
    "issuer_cik",
    "industry",
    "insider_name",
    "insider_title",
    "transaction_type",
    "price",
    "quantity",
    "shares_owned_after",
    "delta_ownership",
    "transaction_value",
    "current_price",
    "price_change_7d",
    "is_cluster",
    "cluster_size",
    "source_url",
    "created_at",
    "updated_at",
)

# Parse-derived fields are overwritten; enrichment keeps existing values when the
# new ones are NULL; cluster flags are left to the detector.
_UPSERT_SQL = f"""
INSERT INTO insider_trades ({", ".join(_TRADE_COLUMNS)})
VALUES ({", ".join("?" for _ in _TRADE_COLUMNS)})
ON CONFLICT (filing_date, trade_date, ticker, insider_name, transaction_type, transaction_value)
DO UPDATE SET
    company_name=excluded.company_name,
    issuer_cik=COALESCE(excluded.issuer_cik, insider_trades.issuer_cik),
    insider_title=excluded.insider_title,
    price=excluded.price,
    quantity=excluded.quantity,
    shares_owned_after=excluded.shares_owned_after,
    delta_ownership=excluded.delta_ownership,
    source_url=COALESCE(excluded.source_url, insider_trades.source_url),
    industry=COALESCE(excluded.industry, insider_trades.industry),
    current_price=COALESCE(excluded.current_price, insider_trades.current_price),
    price_change_7d=COALESCE(excluded.price_change_7d, insider_trades.price_change_7d),
    updated_at=excluded.updated_at
"""


def _params(rec: TradeRecord, now: str) -> tuple:
    return (
        rec.filing_date,
        rec.trade_date,
        rec.ticker,
        rec.company_name,
        rec.issuer_cik,
        rec.industry,
        rec.insider_name,
        rec.insider_title,
        rec.transaction_type,
        float(rec.price),
        int(rec.quantity),
        int(rec.shares_owned_after),
        float(rec.delta_ownership),
        float(rec.transaction_value),
        rec.current_price,
        rec.price_change_7d,
        1 if rec.is_cluster else 0,
        int(rec.cluster_size),
        rec.source_url,
        now,
        now,
    )


def _check_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - MUTABLE_COLUMNS
    if unknown:
        raise ValueError(f"Not updatable: {sorted(unknown)}")
    out: Dict[str, Any] = {}
    for k, v in fields.items():
        out[k] = (1 if v else 0) if k == "is_cluster" else v
    return out


class TradeStore:
    """All reads and writes of insider_trades, over one explicitly passed connection."""

    def __init__(self, conn: Any):
        self.conn = conn

    @contextmanager
    def atomic(self, name: str) -> Iterator[None]:
        """All-or-nothing block (SAVEPOINT); rolls back to the savepoint on error."""
        self.conn.execute(f"SAVEPOINT {name}")
        try:
            yield
        except Exception:
            self.conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            self.conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        self.conn.execute(f"RELEASE SAVEPOINT {name}")

    # -----------------
    # Writes
    # -----------------
    def upsert_trades(self, records: Sequence[TradeRecord]) -> int:
        """Insert-or-update a batch on the natural key. Raises PersistenceError on any failure."""
        if not records:
            return 0
        now = utcnow_iso()
        try:
            with self.atomic("trade_batch"):
                self.conn.executemany(_UPSERT_SQL, [_params(r, now) for r in records])
        except Exception as e:
            _debug(f"Batch upsert of {len(records)} trades rolled back: {e}")
            raise PersistenceError(f"Failed to persist {len(records)} trades: {e}") from e
        _debug(f"Upserted {len(records)} trades")
        return len(records)

    def _update(self, where: str, arg: Any, fields: Mapping[str, Any]) -> int:
        clean = _check_fields(fields)
        if not clean:
            return 0
        cols = sorted(clean)
        sql = (
            f"UPDATE insider_trades SET {', '.join(f'{c}=?' for c in cols)}, updated_at=? "
            f"WHERE {where}=?"
        )
        cur = self.conn.execute(sql, [clean[c] for c in cols] + [utcnow_iso(), arg])
        return int(cur.rowcount or 0)

    def update_by_ticker(self, ticker: str, fields: Mapping[str, Any]) -> int:
        return self._update("ticker", ticker, fields)

    def update_by_id(self, trade_id: int, fields: Mapping[str, Any]) -> int:
        return self._update("trade_id", int(trade_id), fields)

    def reset_cluster_flags(self, min_filing_date: str) -> int:
        cur = self.conn.execute(
            """
            UPDATE insider_trades
            SET is_cluster=0, cluster_size=1, updated_at=?
            WHERE filing_date >= ? AND (is_cluster <> 0 OR cluster_size <> 1)
            """,
            (utcnow_iso(), min_filing_date),
        )
        return int(cur.rowcount or 0)

    # -----------------
    # Reads
    # -----------------
    def load_since(self, min_filing_date: str) -> List[TradeRecord]:
        rows = self.conn.execute(
            """
            SELECT *
            FROM insider_trades
            WHERE filing_date >= ?
            ORDER BY filing_date ASC, trade_id ASC
            """,
            (min_filing_date,),
        ).fetchall()
        return [row_to_trade(r) for r in rows]

    def count_trades(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS n FROM insider_trades").fetchone()
        return int(row["n"]) if row is not None else 0

    def natural_keys(self) -> Set[TradeKey]:
        rows = self.conn.execute(
            """
            SELECT filing_date, trade_date, ticker, insider_name, transaction_type, transaction_value
            FROM insider_trades
            """
        ).fetchall()
        return {
            TradeKey(
                filing_date=str(r["filing_date"]),
                trade_date=str(r["trade_date"]),
                ticker=str(r["ticker"]),
                insider_name=str(r["insider_name"]),
                transaction_type=str(r["transaction_type"]),
                transaction_value=float(r["transaction_value"]),
            )
            for r in rows
        }

    def get_trade(self, trade_id: int) -> Optional[TradeRecord]:
        row = self.conn.execute("SELECT * FROM insider_trades WHERE trade_id=?", (int(trade_id),)).fetchone()
        return row_to_trade(row) if row is not None else None

    def query_trades(
        self,
        *,
        ticker: str | None = None,
        transaction_type: str | None = None,
        is_cluster: bool | None = None,
        filing_date_from: str | None = None,
        filing_date_to: str | None = None,
        limit: int = 100,
    ) -> List[TradeRecord]:
        """Read-only filtered listing, newest filings first."""
        where: List[str] = []
        params: List[Any] = []
        if ticker:
            where.append("ticker=?")
            params.append(ticker.strip().upper())
        if transaction_type:
            where.append("transaction_type=?")
            params.append(transaction_type.strip().upper())
        if is_cluster is not None:
            where.append("is_cluster=?")
            params.append(1 if is_cluster else 0)
        if filing_date_from:
            where.append("filing_date >= ?")
            params.append(filing_date_from)
        if filing_date_to:
            where.append("filing_date <= ?")
            params.append(filing_date_to)

        sql = "SELECT * FROM insider_trades"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY filing_date DESC, trade_id DESC LIMIT ?"
        params.append(max(1, min(int(limit), 1000)))

        rows = self.conn.execute(sql, params).fetchall()
        return [row_to_trade(r) for r in rows]
