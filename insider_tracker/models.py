from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional


@dataclass(frozen=True)
class FilingReference:
    """One Form 4 filing discovered in the SEC current feed."""

    accession_number: str
    issuer_cik: str
    issuer_name: str | None
    filed_at: str | None
    form_type: str | None = None
    # "Issuer" or "Reporting" when the feed title carries it
    feed_role: str | None = None
    link: str | None = None


@dataclass(frozen=True)
class RawTransaction:
    """One non-derivative transaction line from an ownershipDocument."""

    ticker: str | None
    issuer_name: str | None
    issuer_cik: str | None
    insider_name: str
    insider_title: str
    insider_cik: str | None
    transaction_code: str
    trade_date: str | None
    shares: float | None
    price: float | None
    shares_owned_after: float | None
    security_title: str | None = None
    acquired_disposed: str | None = None
    filing_date: str | None = None

    @property
    def transaction_value(self) -> float:
        if self.shares is None or self.price is None:
            return float("nan")
        return self.shares * self.price

    def has_valid_value(self) -> bool:
        v = self.transaction_value
        return math.isfinite(v) and v > 0


@dataclass(frozen=True)
class ParsedFiling:
    """Result of SecClient.parse_filing: the document we used + its transactions."""

    accession_number: str
    source_url: str
    issuer_cik: str | None
    issuer_name: str | None
    ticker: str | None
    transactions: List[RawTransaction]


class TradeKey(NamedTuple):
    """Natural key of a trade. Re-ingesting the same filing upserts on this tuple."""

    filing_date: str
    trade_date: str
    ticker: str
    insider_name: str
    transaction_type: str
    transaction_value: float


class GroupKey(NamedTuple):
    """Cluster grouping key."""

    ticker: str
    transaction_type: str


@dataclass
class TradeRecord:
    filing_date: str
    trade_date: str
    ticker: str
    company_name: str | None
    insider_name: str
    insider_title: str | None
    transaction_type: str
    price: float
    quantity: int
    shares_owned_after: int
    delta_ownership: float
    transaction_value: float
    issuer_cik: str | None = None
    industry: str | None = None
    current_price: float | None = None
    price_change_7d: float | None = None
    is_cluster: bool = False
    cluster_size: int = 1
    source_url: str | None = None
    trade_id: int | None = None

    @property
    def key(self) -> TradeKey:
        return TradeKey(
            filing_date=self.filing_date,
            trade_date=self.trade_date,
            ticker=self.ticker,
            insider_name=self.insider_name,
            transaction_type=self.transaction_type,
            transaction_value=self.transaction_value,
        )

    @property
    def group_key(self) -> GroupKey:
        return GroupKey(ticker=self.ticker, transaction_type=self.transaction_type)


@dataclass(frozen=True)
class PriceData:
    ticker: str
    current_price: float
    price_change_pct: float | None
    as_of: str | None = None


@dataclass
class ClusterWindow:
    """A fixed-anchor time bucket within one (ticker, transaction_type) group."""

    ticker: str
    transaction_type: str
    anchor_date: str
    end_date: str
    members: List[TradeRecord] = field(default_factory=list)

    @property
    def insiders(self) -> List[str]:
        seen: Dict[str, None] = {}
        for m in self.members:
            seen.setdefault(m.insider_name, None)
        return list(seen)

    @property
    def size(self) -> int:
        return len(self.insiders)

    @property
    def is_cluster(self) -> bool:
        return self.size >= 2

    @property
    def total_value(self) -> float:
        return sum(abs(float(m.transaction_value or 0.0)) for m in self.members)


def row_to_trade(row: Any) -> TradeRecord:
    """Build a TradeRecord from a sqlite3.Row / RealDictRow."""
    r: Dict[str, Any] = dict(row)
    return TradeRecord(
        trade_id=int(r["trade_id"]) if r.get("trade_id") is not None else None,
        filing_date=str(r["filing_date"]),
        trade_date=str(r["trade_date"]),
        ticker=str(r["ticker"]),
        company_name=r.get("company_name"),
        industry=r.get("industry"),
        insider_name=str(r["insider_name"]),
        insider_title=r.get("insider_title"),
        transaction_type=str(r["transaction_type"]),
        price=float(r.get("price") or 0.0),
        quantity=int(r.get("quantity") or 0),
        shares_owned_after=int(r.get("shares_owned_after") or 0),
        delta_ownership=float(r.get("delta_ownership") or 0.0),
        transaction_value=float(r["transaction_value"]),
        current_price=(float(r["current_price"]) if r.get("current_price") is not None else None),
        price_change_7d=(float(r["price_change_7d"]) if r.get("price_change_7d") is not None else None),
        is_cluster=bool(r.get("is_cluster") or 0),
        cluster_size=int(r.get("cluster_size") or 1),
        source_url=r.get("source_url"),
        issuer_cik=r.get("issuer_cik"),
    )


def trade_to_public_dict(t: TradeRecord) -> Dict[str, Optional[Any]]:
    return {
        "id": t.trade_id,
        "filing_date": t.filing_date,
        "trade_date": t.trade_date,
        "ticker": t.ticker,
        "company_name": t.company_name,
        "industry": t.industry,
        "insider_name": t.insider_name,
        "insider_title": t.insider_title,
        "transaction_type": t.transaction_type,
        "price": t.price,
        "quantity": t.quantity,
        "shares_owned_after": t.shares_owned_after,
        "delta_ownership": t.delta_ownership,
        "transaction_value": t.transaction_value,
        "current_price": t.current_price,
        "price_change_7d": t.price_change_7d,
        "is_cluster": t.is_cluster,
        "cluster_size": t.cluster_size,
        "source_url": t.source_url,
    }
