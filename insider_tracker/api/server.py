from __future__ import annotations

import json
from dataclasses import replace
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from insider_tracker import __version__
from insider_tracker.config import Config, load_config
from insider_tracker.db import connect, get_app_config, init_db
from insider_tracker.models import trade_to_public_dict
from insider_tracker.pipeline.orchestrator import run_ingestion
from insider_tracker.sec.transaction_codes import transaction_description, transaction_label, transaction_side
from insider_tracker.store import TradeStore


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


app = FastAPI(title="Insider Trade Tracker", version=__version__)
cfg: Config = load_config()


def get_config() -> Config:
    return cfg


@app.on_event("startup")
def _on_startup() -> None:
    init_db(cfg.DB_DSN)


class ScrapeRequest(BaseModel):
    max_filings: Optional[int] = None
    max_entries: Optional[int] = None


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok", "version": __version__}


@app.get("/scrape")
def scrape_status(c: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(c.DB_READ_DSN) as conn:
        last_run = get_app_config(conn, "last_ingestion_utc")
        raw = get_app_config(conn, "last_ingestion_summary")
    return {
        "message": "POST /scrape to run an ingestion",
        "last_run_utc": last_run,
        "last_summary": json.loads(raw) if raw else None,
    }


@app.post("/scrape")
def scrape(payload: Optional[ScrapeRequest] = None, c: Config = Depends(get_config)) -> Dict[str, Any]:
    run_cfg = c
    if payload is not None:
        if payload.max_filings is not None:
            run_cfg = replace(run_cfg, MAX_FILINGS=max(1, int(payload.max_filings)))
        if payload.max_entries is not None:
            run_cfg = replace(run_cfg, FORM4_FEED_MAX_ENTRIES=max(1, int(payload.max_entries)))

    _debug("Ingestion requested")
    summary = run_ingestion(run_cfg)
    if not summary.get("success"):
        raise HTTPException(status_code=500, detail=summary)
    return summary


@app.get("/trades")
def list_trades(
    ticker: Optional[str] = None,
    transaction_type: Optional[str] = None,
    cluster: Optional[bool] = None,
    date_from: Optional[str] = Query(default=None, description="Minimum filing date (YYYY-MM-DD)"),
    date_to: Optional[str] = Query(default=None, description="Maximum filing date (YYYY-MM-DD)"),
    limit: int = Query(default=100, ge=1, le=1000),
    c: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(c.DB_READ_DSN) as conn:
        trades = TradeStore(conn).query_trades(
            ticker=ticker,
            transaction_type=transaction_type,
            is_cluster=cluster,
            filing_date_from=date_from,
            filing_date_to=date_to,
            limit=limit,
        )

    items = []
    for t in trades:
        d = trade_to_public_dict(t)
        d["transaction_label"] = transaction_label(t.transaction_type)
        d["transaction_description"] = transaction_description(t.transaction_type)
        d["transaction_side"] = transaction_side(t.transaction_type)
        items.append(d)
    return {"count": len(items), "trades": items}
