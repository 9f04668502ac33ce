from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import requests

from insider_tracker.config import Config
from insider_tracker.eodhd.client import fetch_eod_prices, us_symbol
from insider_tracker.models import PriceData


def _debug(msg: str) -> None:
    print(f"[market] {msg}")


def price_change_pct(earliest: float, latest: float) -> Optional[float]:
    if earliest == 0:
        return None
    return (latest - earliest) / earliest * 100.0


class MarketDataClient:
    """Latest close + trailing % change per ticker.

    Yahoo's chart endpoint by default; EODHD when EODHD_API_KEY is set.
    Lookups never raise: any failure is logged and returned as None.
    """

    def __init__(
        self,
        cfg: Config,
        session: Any = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.cfg = cfg
        self.session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock

    @property
    def provider(self) -> str:
        return "eodhd" if self.cfg.EODHD_API_KEY else "yahoo"

    def _window(self) -> Tuple[int, int]:
        now = int(self._clock())
        return now - int(self.cfg.PRICE_LOOKBACK_DAYS) * 24 * 60 * 60, now

    def _yahoo_closes(self, ticker: str) -> Tuple[List[float], Optional[str]]:
        period1, period2 = self._window()
        url = f"{self.cfg.YAHOO_CHART_URL.rstrip('/')}/{ticker}"
        params = {"period1": period1, "period2": period2, "interval": "1d"}
        _debug(f"GET {url} period1={period1} period2={period2}")
        r = self.session.get(
            url,
            params=params,
            headers={"User-Agent": "Mozilla/5.0"},
            timeout=self.cfg.PRICE_TIMEOUT_SECONDS,
        )
        if r.status_code != 200:
            raise RuntimeError(f"Yahoo chart error {r.status_code} for {ticker}")

        result = ((r.json() or {}).get("chart") or {}).get("result") or []
        if not result:
            raise RuntimeError(f"Yahoo chart returned no result for {ticker}")
        quotes = (result[0].get("indicators") or {}).get("quote") or [{}]
        closes = [float(c) for c in (quotes[0].get("close") or []) if c is not None]

        as_of = None
        stamps = [t for t in (result[0].get("timestamp") or []) if t is not None]
        if stamps:
            as_of = datetime.fromtimestamp(int(stamps[-1]), tz=timezone.utc).date().isoformat()
        return closes, as_of

    def _eodhd_closes(self, ticker: str) -> Tuple[List[float], Optional[str]]:
        period1, period2 = self._window()
        start = datetime.fromtimestamp(period1, tz=timezone.utc).date()
        end = datetime.fromtimestamp(period2, tz=timezone.utc).date()
        rows = fetch_eod_prices(
            self.cfg.EODHD_BASE_URL,
            str(self.cfg.EODHD_API_KEY),
            us_symbol(ticker),
            start.isoformat(),
            end.isoformat(),
            session=self.session,
            timeout=self.cfg.PRICE_TIMEOUT_SECONDS,
        )
        return [r.close for r in rows], rows[-1].date

    def get_price(self, ticker: str) -> Optional[PriceData]:
        t = (ticker or "").strip().upper()
        if not t:
            return None
        try:
            if self.provider == "eodhd":
                closes, as_of = self._eodhd_closes(t)
            else:
                closes, as_of = self._yahoo_closes(t)
        except Exception as e:
            _debug(f"Price lookup failed for {t}: {e}")
            return None

        if not closes:
            _debug(f"No closes for {t}")
            return None

        return PriceData(
            ticker=t,
            current_price=closes[-1],
            price_change_pct=price_change_pct(closes[0], closes[-1]),
            as_of=as_of,
        )

    def get_batch(self, tickers: Iterable[str]) -> Dict[str, Optional[PriceData]]:
        """Sequential lookups with PRICE_BATCH_DELAY_SECONDS between requests."""
        out: Dict[str, Optional[PriceData]] = {}
        for t in tickers:
            if t in out:
                continue
            if out and self.cfg.PRICE_BATCH_DELAY_SECONDS > 0:
                self._sleep(self.cfg.PRICE_BATCH_DELAY_SECONDS)
            out[t] = self.get_price(t)
        return out
