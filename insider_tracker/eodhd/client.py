from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, List

import requests


@dataclass(frozen=True)
class EODRow:
    date: str
    close: float


def _debug(msg: str) -> None:
    print(f"[eodhd] {msg}")


_EODHD_SYMBOL = re.compile(r"^[A-Za-z0-9\-]+\.[A-Za-z]{2,4}$")


def us_symbol(ticker: str) -> str:
    """Map an SEC trading symbol to an EODHD CODE.EXCHANGE symbol.

    Share-class suffixes (BRK.B) are not exchanges; EODHD spells them with a dash.
    """
    t = (ticker or "").strip().upper()
    if not t:
        raise RuntimeError("Ticker is blank; cannot build EODHD symbol")
    if _EODHD_SYMBOL.match(t):
        return t
    return f"{t.replace('.', '-')}.US"


def fetch_eod_prices(
    base_url: str,
    api_key: str,
    symbol: str,
    start_date: str,
    end_date: str,
    *,
    session: Any = None,
    timeout: float = 10,
) -> List[EODRow]:
    """Fetch daily closes from EODHD, oldest first."""
    http = session or requests
    url = f"{base_url.rstrip('/')}/eod/{symbol}"
    params = {
        "api_token": api_key,
        "fmt": "json",
        "period": "d",
        "from": start_date,
        "to": end_date,
    }
    _debug(f"Fetching EOD prices: {url} from={start_date} to={end_date}")
    r = http.get(url, params=params, timeout=timeout)
    if r.status_code != 200:
        raise RuntimeError(f"EODHD eod error {r.status_code}: {r.text}")

    data = r.json()
    if not isinstance(data, list):
        raise RuntimeError(f"EODHD eod returned unexpected payload: {data}")

    out: List[EODRow] = []
    for row in data:
        if not isinstance(row, dict):
            continue
        d = str(row.get("date") or "").strip()
        close = row.get("close")
        if not d or close is None:
            continue
        try:
            c = float(close)
        except (TypeError, ValueError):
            continue
        if math.isfinite(c):
            out.append(EODRow(date=d, close=c))

    if not out:
        raise RuntimeError(f"No price rows returned for symbol {symbol}")

    out.sort(key=lambda r: r.date)
    return out
