from __future__ import annotations

import math
import re
from datetime import date
from typing import Dict, Iterable, List, Optional

from insider_tracker.models import FilingReference, RawTransaction, TradeKey, TradeRecord
from insider_tracker.util.normalization import clean_ticker, normalize_cik
from insider_tracker.util.time import utc_today

_ISO_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})")


def normalize_date(value: str | None, today: date | None = None) -> str:
    """YYYY-MM-DD from a date/datetime string (time and zone suffixes dropped).

    Unparseable input becomes today's date. This is lossy on purpose: a record with
    a wrong date is kept rather than dropped.
    """
    fallback = (today or utc_today()).isoformat()
    s = str(value or "").strip().split("T")[0]
    m = _ISO_DATE_PREFIX.match(s)
    if not m:
        return fallback
    try:
        return date.fromisoformat(m.group(1)).isoformat()
    except ValueError:
        return fallback


def filter_valid(raws: Iterable[RawTransaction]) -> List[RawTransaction]:
    """Drop lines with a non-positive/non-finite value or a placeholder ticker.

    Transaction codes are never filtered here.
    """
    out: List[RawTransaction] = []
    for r in raws:
        if clean_ticker(r.ticker) is None:
            continue
        if not r.has_valid_value():
            continue
        out.append(r)
    return out


def _non_negative_int(x: Optional[float]) -> int:
    if x is None or not math.isfinite(x):
        return 0
    return max(0, int(round(abs(x))))


def to_trade_record(
    raw: RawTransaction,
    filing: FilingReference,
    source_url: str | None = None,
    today: date | None = None,
) -> TradeRecord:
    shares = abs(float(raw.shares or 0.0))
    price = float(raw.price or 0.0)
    after = float(raw.shares_owned_after or 0.0)
    if not math.isfinite(after):
        after = 0.0

    delta = (shares / after) * 100.0 if after > 0 else 0.0

    return TradeRecord(
        filing_date=normalize_date(raw.filing_date or filing.filed_at, today),
        trade_date=normalize_date(raw.trade_date, today),
        ticker=str(clean_ticker(raw.ticker)),
        company_name=raw.issuer_name or filing.issuer_name,
        issuer_cik=normalize_cik(raw.issuer_cik) or normalize_cik(filing.issuer_cik),
        insider_name=raw.insider_name,
        insider_title=raw.insider_title,
        transaction_type=raw.transaction_code,
        price=price,
        quantity=_non_negative_int(shares),
        shares_owned_after=_non_negative_int(after),
        delta_ownership=delta,
        transaction_value=raw.transaction_value,
        is_cluster=False,
        cluster_size=1,
        source_url=source_url,
    )


def dedupe_records(records: Iterable[TradeRecord]) -> List[TradeRecord]:
    """Collapse identical natural keys within a batch; the last-seen record wins."""
    by_key: Dict[TradeKey, TradeRecord] = {}
    for rec in records:
        by_key[rec.key] = rec
    return list(by_key.values())
