from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from insider_tracker.market.client import MarketDataClient
from insider_tracker.models import PriceData, TradeRecord
from insider_tracker.pipeline.industry import IndustryResolver, resolve_industry
from insider_tracker.store import TradeStore


def _debug(msg: str) -> None:
    print(f"[enrich] {msg}")


def representatives(records: Sequence[TradeRecord]) -> Dict[str, TradeRecord]:
    """First record per ticker, in first-seen order."""
    out: Dict[str, TradeRecord] = {}
    for rec in records:
        out.setdefault(rec.ticker, rec)
    return out


def enrich_tickers(
    store: TradeStore,
    records: Sequence[TradeRecord],
    market_client: MarketDataClient,
    resolvers: Sequence[IndustryResolver],
    *,
    delay_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Resolve industry and price data per distinct ticker and write non-null fields back.

    Failures are isolated per ticker. Returns the number of tickers that received
    at least one field.
    """
    reps = representatives(records)
    if not reps:
        return 0

    industries: Dict[str, Optional[str]] = {}
    for i, (ticker, rec) in enumerate(reps.items()):
        if i and delay_seconds > 0:
            sleep(delay_seconds)
        try:
            industries[ticker] = resolve_industry(resolvers, rec.issuer_cik, rec.company_name)
        except Exception as e:
            _debug(f"Industry lookup failed for {ticker} (cik={rec.issuer_cik}): {e}")
            industries[ticker] = None

    tickers: List[str] = list(reps)
    _debug(f"Fetching prices for {len(tickers)} tickers")
    prices: Dict[str, Optional[PriceData]] = market_client.get_batch(tickers)

    enriched = 0
    for ticker in tickers:
        fields: Dict[str, Any] = {}
        if industries.get(ticker):
            fields["industry"] = industries[ticker]
        p = prices.get(ticker)
        if p is not None:
            fields["current_price"] = p.current_price
            if p.price_change_pct is not None:
                fields["price_change_7d"] = p.price_change_pct
        if not fields:
            _debug(f"{ticker}: nothing to enrich")
            continue
        try:
            with store.atomic("enrich_ticker"):
                n = store.update_by_ticker(ticker, fields)
        except Exception as e:
            _debug(f"{ticker}: enrichment write failed: {e}")
            continue
        enriched += 1
        _debug(f"{ticker}: updated {n} rows with {sorted(fields)}")
    return enriched
