from __future__ import annotations

import json
import time
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

from insider_tracker.compute.clusters import recompute_clusters
from insider_tracker.config import Config, load_config
from insider_tracker.db import connect, ingestion_lock, init_db, upsert_app_config
from insider_tracker.market.client import MarketDataClient
from insider_tracker.models import FilingReference, RawTransaction, TradeRecord
from insider_tracker.pipeline.enrich import enrich_tickers
from insider_tracker.pipeline.industry import IndustryResolver, name_resolver
from insider_tracker.pipeline.normalize import dedupe_records, filter_valid, to_trade_record
from insider_tracker.sec.edgar import FilingListError, SecClient
from insider_tracker.sec.transaction_codes import transaction_label
from insider_tracker.store import PersistenceError, TradeStore
from insider_tracker.util.time import utcnow_iso


def _debug(msg: str) -> None:
    print(f"[scrape] {msg}")


def _failure(error: str, **counters: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"success": False, "trades_processed": 0, "error": error}
    out.update(counters)
    return out


class ScrapeOrchestrator:
    """One ingestion run: list -> parse -> filter -> normalize/dedupe -> persist -> clusters -> enrich.

    Failure taxonomy:
      - listing failure (first page) and persistence failure end the run with success=False
      - a single filing that fails to parse is logged and skipped
      - cluster detection failure is logged; the run still succeeds
      - enrichment failures are isolated per ticker
    """

    def __init__(
        self,
        cfg: Config,
        store: TradeStore,
        sec_client: SecClient,
        market_client: MarketDataClient,
        industry_resolvers: Optional[Sequence[IndustryResolver]] = None,
        sleep: Callable[[float], None] = time.sleep,
        today: date | None = None,
    ):
        self.cfg = cfg
        self.store = store
        self.sec_client = sec_client
        self.market_client = market_client
        self.sleep = sleep
        self.today = today
        if industry_resolvers is None:
            industry_resolvers = [self._sec_classification, name_resolver]
        self.industry_resolvers = list(industry_resolvers)

    def _sec_classification(self, issuer_cik: Optional[str], company_name: Optional[str]) -> Optional[str]:
        if not issuer_cik:
            return None
        return self.sec_client.get_issuer_classification(issuer_cik)

    def _parse_filings(self, filings: Sequence[FilingReference], counters: Dict[str, int]) -> List[TradeRecord]:
        cap = self.cfg.MAX_FILINGS
        todo = list(filings[:cap]) if cap else list(filings)
        if len(todo) < len(filings):
            _debug(f"Limited to {len(todo)} of {len(filings)} filings (MAX_FILINGS)")

        records: List[TradeRecord] = []
        for i, filing in enumerate(todo):
            if i and self.cfg.FILING_PARSE_DELAY_SECONDS > 0:
                self.sleep(self.cfg.FILING_PARSE_DELAY_SECONDS)

            _debug(f"Parsing {filing.accession_number} {filing.issuer_name or 'Unknown'} (cik={filing.issuer_cik})")
            try:
                parsed = self.sec_client.parse_filing(filing.accession_number, filing.issuer_cik)
            except Exception as e:
                counters["filings_failed"] += 1
                _debug(f"  {filing.accession_number} failed: {e}")
                continue

            if parsed is None or not parsed.transactions:
                counters["filings_without_trades"] += 1
                _debug(f"  {filing.accession_number}: no trades")
                continue

            counters["filings_parsed"] += 1
            raws: List[RawTransaction] = [replace(t, filing_date=filing.filed_at) for t in parsed.transactions]
            valid = filter_valid(raws)
            for raw in valid:
                records.append(to_trade_record(raw, filing, source_url=parsed.source_url, today=self.today))
            _debug(
                f"  {len(valid)} trades: "
                + ", ".join(sorted({transaction_label(r.transaction_code) for r in valid}))
            )
        return records

    def run_ingestion(self) -> Dict[str, Any]:
        with ingestion_lock(self.store.conn) as acquired:
            if not acquired:
                _debug("Another ingestion run holds the lock")
                return _failure("ingestion already running")
            return self._run()

    def _run(self) -> Dict[str, Any]:
        counters: Dict[str, int] = {
            "filings_listed": 0,
            "filings_parsed": 0,
            "filings_without_trades": 0,
            "filings_failed": 0,
            "clusters_found": 0,
            "tickers_enriched": 0,
        }

        # 1. list
        try:
            filings = self.sec_client.list_recent_filings(self.cfg.FORM4_FEED_MAX_ENTRIES)
        except FilingListError as e:
            _debug(f"Listing failed: {e}")
            return _failure(str(e), **counters)
        counters["filings_listed"] = len(filings)
        _debug(f"Found {len(filings)} Form 4 filings")

        # 2-3. parse + filter
        parsed_records = self._parse_filings(filings, counters)

        # 4. normalize/dedupe + persist
        records = dedupe_records(parsed_records)
        if len(records) < len(parsed_records):
            _debug(f"Collapsed {len(parsed_records) - len(records)} duplicate trades in batch")
        try:
            persisted = self.store.upsert_trades(records)
        except PersistenceError as e:
            _debug(f"Persistence failed: {e}")
            return _failure(str(e), **counters)
        self.store.conn.commit()

        # 5. clusters
        try:
            windows = recompute_clusters(self.store, self.cfg, today=self.today)
            counters["clusters_found"] = len(windows)
            self.store.conn.commit()
        except Exception as e:
            _debug(f"Cluster detection failed (continuing): {e}")

        # 6. enrich
        if records:
            counters["tickers_enriched"] = enrich_tickers(
                self.store,
                records,
                self.market_client,
                self.industry_resolvers,
                delay_seconds=self.cfg.ENRICH_DELAY_SECONDS,
                sleep=self.sleep,
            )

        _debug(f"Run complete: {persisted} trades persisted")
        out: Dict[str, Any] = {"success": True, "trades_processed": persisted}
        out.update(counters)
        return out


def run_ingestion(cfg: Config | None = None) -> Dict[str, Any]:
    """Entry point for schedulers, scripts and the API. Never raises."""
    cfg = cfg or load_config()
    try:
        init_db(cfg.DB_DSN)
        with connect(cfg.DB_DSN) as conn:
            store = TradeStore(conn)
            orchestrator = ScrapeOrchestrator(
                cfg,
                store,
                SecClient(cfg),
                MarketDataClient(cfg),
            )
            summary = orchestrator.run_ingestion()
            upsert_app_config(conn, "last_ingestion_utc", utcnow_iso())
            upsert_app_config(conn, "last_ingestion_summary", json.dumps(summary, sort_keys=True))
            return summary
    except Exception as e:
        _debug(f"Ingestion aborted: {e}")
        return _failure(str(e))
