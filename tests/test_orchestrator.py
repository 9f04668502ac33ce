"""End-to-end ingestion runs with fake SEC and market clients over a real SQLite store."""

import json
from dataclasses import replace

import pytest

import insider_tracker.pipeline.orchestrator as orchestrator_mod
from insider_tracker.db import connect, get_app_config, ingestion_lock
from insider_tracker.models import FilingReference, ParsedFiling, PriceData, RawTransaction
from insider_tracker.pipeline.orchestrator import ScrapeOrchestrator, run_ingestion
from insider_tracker.sec.edgar import FilingListError
from insider_tracker.store import PersistenceError, TradeStore

ISSUERS = {"ACME": ("0000123456", "Acme Software Inc"), "BETA": ("0000777777", "Beta Therapeutics Inc")}


def _filing(n, ticker="ACME"):
    cik, name = ISSUERS[ticker]
    return FilingReference(
        accession_number=f"{cik}-24-{n:06d}",
        issuer_cik=cik,
        issuer_name=name,
        filed_at="2024-06-14",
        form_type="4",
        feed_role="Issuer",
    )


def _raw(ticker, insider, code="P", shares=1000.0, price=10.0):
    cik, name = ISSUERS[ticker]
    return RawTransaction(
        ticker=ticker,
        issuer_name=name,
        issuer_cik=cik,
        insider_name=insider,
        insider_title="Director",
        insider_cik=None,
        transaction_code=code,
        trade_date="2024-06-12",
        shares=shares,
        price=price,
        shares_owned_after=10000.0,
    )


def _parsed(filing, *raws):
    return ParsedFiling(
        accession_number=filing.accession_number,
        source_url=f"https://www.sec.gov/Archives/edgar/data/{int(filing.issuer_cik)}/{filing.accession_number.replace('-', '')}/form4.xml",
        issuer_cik=filing.issuer_cik,
        issuer_name=filing.issuer_name,
        ticker=raws[0].ticker if raws else None,
        transactions=list(raws),
    )


class FakeSec:
    def __init__(self, filings, parsed, list_error=None, classification=None):
        self.filings = filings
        self.parsed = parsed
        self.list_error = list_error
        self.classification = classification or {}
        self.parse_calls = []
        self.list_calls = []

    def list_recent_filings(self, max_count=None):
        self.list_calls.append(max_count)
        if self.list_error:
            raise self.list_error
        return list(self.filings)

    def parse_filing(self, accession_number, issuer_cik):
        self.parse_calls.append(accession_number)
        result = self.parsed.get(accession_number)
        if isinstance(result, Exception):
            raise result
        return result

    def get_issuer_classification(self, issuer_cik):
        result = self.classification.get(issuer_cik)
        if isinstance(result, Exception):
            raise result
        return result


class FakeMarket:
    def __init__(self, prices=None):
        self.prices = prices or {}
        self.batches = []

    def get_batch(self, tickers):
        tickers = list(tickers)
        self.batches.append(tickers)
        return {t: self.prices.get(t) for t in tickers}


@pytest.fixture
def scenario():
    """Two ACME insiders buying (a cluster) and one BETA sale with an extra zero-price line."""
    f1, f2, f3 = _filing(1), _filing(2), _filing(3, "BETA")
    parsed = {
        f1.accession_number: _parsed(f1, _raw("ACME", "Doe John")),
        f2.accession_number: _parsed(f2, _raw("ACME", "Roe Jane", shares=500.0)),
        f3.accession_number: _parsed(f3, _raw("BETA", "Poe Sam", code="S"), _raw("BETA", "Poe Sam", code="S", price=0.0)),
    }
    sec = FakeSec(
        [f1, f2, f3],
        parsed,
        classification={"0000123456": "Prepackaged Software"},
    )
    market = FakeMarket(
        {
            "ACME": PriceData("ACME", 12.0, 20.0, "2024-06-14"),
            "BETA": PriceData("BETA", 3.0, None, "2024-06-14"),
        }
    )
    return sec, market


def _orchestrator(cfg, store, sec, market, today, **kw):
    return ScrapeOrchestrator(cfg, store, sec, market, today=today, **kw)


def test_successful_run(cfg, store, scenario, today):
    sec, market = scenario

    summary = _orchestrator(cfg, store, sec, market, today).run_ingestion()

    assert summary["success"] is True
    assert summary["trades_processed"] == 3
    assert summary["filings_listed"] == 3
    assert summary["filings_parsed"] == 3
    assert summary["filings_failed"] == 0
    assert summary["clusters_found"] == 1
    assert summary["tickers_enriched"] == 2
    assert sec.list_calls == [cfg.FORM4_FEED_MAX_ENTRIES]

    trades = {t.insider_name: t for t in store.load_since("2000-01-01")}
    assert set(trades) == {"Doe John", "Roe Jane", "Poe Sam"}
    acme = trades["Doe John"]
    assert acme.filing_date == "2024-06-14"
    assert acme.trade_date == "2024-06-12"
    assert acme.is_cluster and acme.cluster_size == 2
    assert acme.industry == "Prepackaged Software"
    assert acme.current_price == 12.0
    assert acme.price_change_7d == 20.0
    assert acme.source_url.endswith("/form4.xml")

    beta = trades["Poe Sam"]
    assert not beta.is_cluster
    # SEC lookup had nothing; the name-based guess fills in
    assert beta.industry == "Pharmaceutical Preparations"
    assert beta.current_price == 3.0
    assert beta.price_change_7d is None


def test_rerun_is_idempotent(cfg, store, scenario, today):
    sec, market = scenario
    _orchestrator(cfg, store, sec, market, today).run_ingestion()
    keys = store.natural_keys()

    summary = _orchestrator(cfg, store, sec, market, today).run_ingestion()

    assert summary["success"] is True
    assert store.count_trades() == 3
    assert store.natural_keys() == keys


def test_one_bad_filing_does_not_stop_the_run(cfg, store, scenario, today):
    """Filing 2 blows up; the run still persists the trades from filings 1 and 3."""
    sec, market = scenario
    sec.parsed[_filing(2).accession_number] = RuntimeError("SEC returned garbage")

    summary = _orchestrator(cfg, store, sec, market, today).run_ingestion()

    assert summary["success"] is True
    assert summary["filings_failed"] == 1
    assert summary["filings_parsed"] == 2
    assert summary["trades_processed"] == 2
    assert summary["clusters_found"] == 0
    assert sec.parse_calls == [_filing(n, t).accession_number for n, t in ((1, "ACME"), (2, "ACME"), (3, "BETA"))]
    stored = sorted((t.ticker, t.insider_name) for t in store.load_since("2000-01-01"))
    assert stored == [("ACME", "Doe John"), ("BETA", "Poe Sam")]


def test_listing_failure_fails_the_run(cfg, store, today):
    sec = FakeSec([], {}, list_error=FilingListError("Could not fetch Form 4 feed"))
    market = FakeMarket()

    summary = _orchestrator(cfg, store, sec, market, today).run_ingestion()

    assert summary["success"] is False
    assert "Form 4 feed" in summary["error"]
    assert summary["trades_processed"] == 0
    assert store.count_trades() == 0
    assert market.batches == []


def test_persistence_failure_fails_the_run(cfg, store, scenario, today, monkeypatch):
    sec, market = scenario

    def boom(records):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store, "upsert_trades", boom)
    summary = _orchestrator(cfg, store, sec, market, today).run_ingestion()

    assert summary["success"] is False
    assert summary["error"] == "disk full"
    assert market.batches == []


def test_cluster_failure_is_not_fatal(cfg, store, scenario, today, monkeypatch):
    sec, market = scenario

    def boom(*args, **kwargs):
        raise RuntimeError("cluster bug")

    monkeypatch.setattr(orchestrator_mod, "recompute_clusters", boom)
    summary = _orchestrator(cfg, store, sec, market, today).run_ingestion()

    assert summary["success"] is True
    assert summary["clusters_found"] == 0
    assert summary["tickers_enriched"] == 2
    assert store.count_trades() == 3


def test_industry_failure_is_isolated_per_ticker(cfg, store, scenario, today):
    sec, market = scenario
    sec.classification["0000123456"] = RuntimeError("lookup exploded")

    summary = _orchestrator(cfg, store, sec, market, today).run_ingestion()

    assert summary["tickers_enriched"] == 2
    trades = {t.ticker: t for t in store.load_since("2000-01-01")}
    assert trades["ACME"].industry is None
    assert trades["ACME"].current_price == 12.0
    assert trades["BETA"].industry == "Pharmaceutical Preparations"


def test_enrichment_runs_on_every_successful_run(cfg, store, scenario, today):
    sec, market = scenario
    _orchestrator(cfg, store, sec, market, today).run_ingestion()
    market.prices["ACME"] = PriceData("ACME", 15.0, 50.0, "2024-06-15")

    summary = _orchestrator(cfg, store, sec, market, today).run_ingestion()

    assert summary["tickers_enriched"] == 2
    assert market.batches == [["ACME", "BETA"], ["ACME", "BETA"]]
    prices = {t.ticker: t.current_price for t in store.load_since("2000-01-01")}
    assert prices == {"ACME": 15.0, "BETA": 3.0}


def test_run_without_trades_skips_enrichment(cfg, store, today):
    f1 = _filing(1)
    sec = FakeSec([f1], {f1.accession_number: None})
    market = FakeMarket()

    summary = _orchestrator(cfg, store, sec, market, today).run_ingestion()

    assert summary["success"] is True
    assert summary["filings_without_trades"] == 1
    assert summary["trades_processed"] == 0
    assert market.batches == []


def test_max_filings_and_parse_delay(cfg, store, scenario, today):
    sec, market = scenario
    sleeps = []

    orch = _orchestrator(
        replace(cfg, MAX_FILINGS=2, FILING_PARSE_DELAY_SECONDS=0.3),
        store,
        sec,
        market,
        today,
        industry_resolvers=[],
        sleep=sleeps.append,
    )
    summary = orch.run_ingestion()

    assert sec.parse_calls == [_filing(1).accession_number, _filing(2).accession_number]
    assert summary["trades_processed"] == 2
    assert sleeps == [0.3]


def test_concurrent_run_is_rejected(cfg, store, scenario, today):
    sec, market = scenario
    with ingestion_lock(store.conn):
        summary = _orchestrator(cfg, store, sec, market, today).run_ingestion()

    assert summary == {"success": False, "trades_processed": 0, "error": "ingestion already running"}
    assert sec.list_calls == []


def test_module_entry_point_records_last_run(cfg, scenario, monkeypatch):
    sec, market = scenario
    monkeypatch.setattr(orchestrator_mod, "SecClient", lambda c: sec)
    monkeypatch.setattr(orchestrator_mod, "MarketDataClient", lambda c: market)

    summary = run_ingestion(cfg)

    assert summary["success"] is True
    with connect(cfg.DB_DSN) as conn:
        assert TradeStore(conn).count_trades() == 3
        assert json.loads(get_app_config(conn, "last_ingestion_summary")) == summary
        assert get_app_config(conn, "last_ingestion_utc")


def test_module_entry_point_never_raises(cfg, monkeypatch):
    def broken(c):
        raise RuntimeError("no network")

    monkeypatch.setattr(orchestrator_mod, "SecClient", broken)

    summary = run_ingestion(cfg)

    assert summary["success"] is False
    assert summary["error"] == "no network"
