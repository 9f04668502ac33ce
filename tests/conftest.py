from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import pytest

from insider_tracker.config import Config, load_config
from insider_tracker.db import connect, init_db
from insider_tracker.models import TradeRecord
from insider_tracker.store import TradeStore

TODAY = date(2024, 6, 14)


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "", json_data: Any = None):
        self.status_code = status_code
        self.text = text
        self._json = json_data

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    """requests.Session stand-in: exact-URL routes, everything else is a 404.

    A route value may be a FakeResponse or an Exception instance (raised on GET).
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, params: Any = None, headers: Any = None, timeout: Any = None) -> FakeResponse:
        self.calls.append({"url": url, "params": params, "headers": headers or {}, "timeout": timeout})
        r = self.routes.get(url)
        if isinstance(r, Exception):
            raise r
        if r is None:
            return FakeResponse(404, "Not Found")
        return r

    @property
    def urls(self) -> List[str]:
        return [c["url"] for c in self.calls]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def cfg(tmp_path) -> Config:
    db = str(tmp_path / "trades.sqlite")
    return replace(
        load_config(),
        DB_DSN=db,
        DB_READ_DSN=db,
        SEC_USER_AGENT="TestSuite test@example.com",
        SEC_BASE_URL="https://www.sec.gov",
        SEC_DATA_URL="https://data.sec.gov",
        SEC_MIN_INTERVAL_SECONDS=0.0,
        FORM4_FEED_PAGE_SIZE=100,
        FORM4_FEED_MAX_ENTRIES=100,
        MAX_FILINGS=None,
        FILING_PARSE_DELAY_SECONDS=0.0,
        ENRICH_DELAY_SECONDS=0.0,
        CLUSTER_WINDOW_DAYS=7,
        CLUSTER_LOOKBACK_DAYS=30,
        YAHOO_CHART_URL="https://query1.finance.yahoo.com/v8/finance/chart",
        PRICE_LOOKBACK_DAYS=7,
        PRICE_BATCH_DELAY_SECONDS=0.2,
        EODHD_API_KEY=None,
        EODHD_BASE_URL="https://eodhd.com/api",
    )


@pytest.fixture
def conn(cfg):
    init_db(cfg.DB_DSN)
    with connect(cfg.DB_DSN) as c:
        yield c


@pytest.fixture
def store(conn) -> TradeStore:
    return TradeStore(conn)


@pytest.fixture
def make_trade() -> Callable[..., TradeRecord]:
    def _make(**overrides: Any) -> TradeRecord:
        days_ago = overrides.pop("days_ago", None)
        base: Dict[str, Any] = dict(
            filing_date=TODAY.isoformat(),
            trade_date=TODAY.isoformat(),
            ticker="ACME",
            company_name="Acme Corp",
            insider_name="Doe John",
            insider_title="CEO",
            transaction_type="P",
            price=10.0,
            quantity=1000,
            shares_owned_after=5000,
            delta_ownership=20.0,
            transaction_value=10000.0,
            issuer_cik="0000123456",
            source_url="https://www.sec.gov/Archives/edgar/data/123456/000012345624000001/form4.xml",
        )
        if days_ago is not None:
            d = (TODAY - timedelta(days=days_ago)).isoformat()
            base["filing_date"] = d
            base["trade_date"] = d
        base.update(overrides)
        return TradeRecord(**base)

    return _make


def _tx_xml(tx: Dict[str, Any]) -> str:
    code = tx.get("code", "P")
    coding = f"<transactionCoding><transactionFormType>4</transactionFormType><transactionCode>{code}</transactionCode></transactionCoding>"
    if code is None:
        coding = ""
    return f"""
    <nonDerivativeTransaction>
      <securityTitle><value>Common Stock</value></securityTitle>
      <transactionDate><value>{tx.get("date", "2024-06-10")}</value></transactionDate>
      {coding}
      <transactionAmounts>
        <transactionShares><value>{tx.get("shares", "1000")}</value></transactionShares>
        <transactionPricePerShare><value>{tx.get("price", "10.00")}</value></transactionPricePerShare>
        <transactionAcquiredDisposedCode><value>{tx.get("ad", "A")}</value></transactionAcquiredDisposedCode>
      </transactionAmounts>
      <postTransactionAmounts>
        <sharesOwnedFollowingTransaction><value>{tx.get("after", "5000")}</value></sharesOwnedFollowingTransaction>
      </postTransactionAmounts>
      <ownershipNature><directOrIndirectOwnership><value>D</value></directOrIndirectOwnership></ownershipNature>
    </nonDerivativeTransaction>"""


def build_form4(
    *,
    ticker: str = "ACME",
    issuer_name: str = "Acme Corp",
    issuer_cik: str = "0000123456",
    owner_name: str = "Doe John",
    owner_cik: str = "0000999999",
    relationship: Optional[Dict[str, str]] = None,
    transactions: Iterable[Dict[str, Any]] = ({},),
    derivative: bool = False,
) -> str:
    rel = relationship if relationship is not None else {"isOfficer": "1", "officerTitle": "Chief Executive Officer"}
    rel_xml = "".join(f"<{k}>{v}</{k}>" for k, v in rel.items())
    deriv_xml = ""
    if derivative:
        deriv_xml = """
  <derivativeTable>
    <derivativeTransaction>
      <securityTitle><value>Stock Option</value></securityTitle>
      <transactionDate><value>2024-06-10</value></transactionDate>
      <transactionCoding><transactionCode>M</transactionCode></transactionCoding>
      <transactionAmounts>
        <transactionShares><value>500</value></transactionShares>
        <transactionPricePerShare><value>1.00</value></transactionPricePerShare>
        <transactionAcquiredDisposedCode><value>D</value></transactionAcquiredDisposedCode>
      </transactionAmounts>
    </derivativeTransaction>
  </derivativeTable>"""
    return f"""<?xml version="1.0"?>
<ownershipDocument>
  <schemaVersion>X0508</schemaVersion>
  <documentType>4</documentType>
  <periodOfReport>2024-06-10</periodOfReport>
  <issuer>
    <issuerCik>{issuer_cik}</issuerCik>
    <issuerName>{issuer_name}</issuerName>
    <issuerTradingSymbol>{ticker}</issuerTradingSymbol>
  </issuer>
  <reportingOwner>
    <reportingOwnerId>
      <rptOwnerCik>{owner_cik}</rptOwnerCik>
      <rptOwnerName>{owner_name}</rptOwnerName>
    </reportingOwnerId>
    <reportingOwnerRelationship>{rel_xml}</reportingOwnerRelationship>
  </reportingOwner>
  <nonDerivativeTable>{"".join(_tx_xml(t) for t in transactions)}
  </nonDerivativeTable>{deriv_xml}
</ownershipDocument>
"""


def build_atom(entries: Iterable[Tuple[str, str, str]]) -> str:
    """entries: (title, link, updated)"""
    body = "".join(
        f"""
  <entry>
    <title>{title}</title>
    <link rel="alternate" type="text/html" href="{link}"/>
    <summary type="html">Filed: {updated[:10]}</summary>
    <updated>{updated}</updated>
    <category scheme="https://www.sec.gov/" label="form type" term="4"/>
  </entry>"""
        for title, link, updated in entries
    )
    return f"""<?xml version="1.0" encoding="ISO-8859-1" ?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Latest Filings</title>
  <updated>2024-06-14T12:00:00-04:00</updated>{body}
</feed>
"""


def feed_entry(n: int, cik: str = "123456", role: str = "Issuer", name: str = "Acme Corp") -> Tuple[str, str, str]:
    """Feed entry for accession 0000{cik}-24-{n:06d}."""
    acc = f"{cik.zfill(10)}-24-{n:06d}"
    link = f"https://www.sec.gov/Archives/edgar/data/{int(cik)}/{acc.replace('-', '')}/{acc}-index.htm"
    return (f"4 - {name} ({cik.zfill(10)}) ({role})", link, "2024-06-14T16:05:12-04:00")


@pytest.fixture
def form4_xml() -> Callable[..., str]:
    return build_form4


@pytest.fixture
def atom_feed() -> Callable[..., str]:
    return build_atom


@pytest.fixture
def make_feed_entry() -> Callable[..., Tuple[str, str, str]]:
    return feed_entry
