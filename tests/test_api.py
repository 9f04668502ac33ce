"""HTTP surface: health, scrape trigger/status and the read-only trade listing."""

import pytest
from fastapi.testclient import TestClient

import insider_tracker.api.server as server
from insider_tracker.db import upsert_app_config


@pytest.fixture
def client(cfg, conn):
    server.app.dependency_overrides[server.get_config] = lambda: cfg
    try:
        yield TestClient(server.app)
    finally:
        server.app.dependency_overrides.clear()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_scrape_success(client, cfg, monkeypatch):
    seen = {}

    def fake_run(run_cfg):
        seen["cfg"] = run_cfg
        return {"success": True, "trades_processed": 4}

    monkeypatch.setattr(server, "run_ingestion", fake_run)
    r = client.post("/scrape", json={"max_filings": 5, "max_entries": 40})

    assert r.status_code == 200
    assert r.json() == {"success": True, "trades_processed": 4}
    assert seen["cfg"].MAX_FILINGS == 5
    assert seen["cfg"].FORM4_FEED_MAX_ENTRIES == 40
    assert seen["cfg"].DB_DSN == cfg.DB_DSN


def test_scrape_without_body_uses_config(client, cfg, monkeypatch):
    seen = {}

    def fake_run(run_cfg):
        seen["cfg"] = run_cfg
        return {"success": True, "trades_processed": 0}

    monkeypatch.setattr(server, "run_ingestion", fake_run)
    assert client.post("/scrape").status_code == 200
    assert seen["cfg"] is cfg


def test_scrape_failure_is_500(client, monkeypatch):
    failure = {"success": False, "trades_processed": 0, "error": "Could not fetch Form 4 feed"}
    monkeypatch.setattr(server, "run_ingestion", lambda run_cfg: failure)

    r = client.post("/scrape")

    assert r.status_code == 500
    assert r.json()["detail"] == failure


def test_scrape_status(client, conn):
    assert client.get("/scrape").json()["last_run_utc"] is None

    upsert_app_config(conn, "last_ingestion_utc", "2024-06-14T12:00:00Z")
    upsert_app_config(conn, "last_ingestion_summary", '{"success": true, "trades_processed": 2}')
    conn.commit()

    body = client.get("/scrape").json()
    assert body["last_run_utc"] == "2024-06-14T12:00:00Z"
    assert body["last_summary"] == {"success": True, "trades_processed": 2}


def test_list_trades_with_filters(client, store, make_trade):
    store.upsert_trades(
        [
            make_trade(days_ago=1),
            make_trade(days_ago=2, insider_name="Roe Jane", transaction_type="S"),
            make_trade(days_ago=3, ticker="BETA", company_name="Beta Inc"),
        ]
    )
    store.conn.commit()

    body = client.get("/trades").json()
    assert body["count"] == 3
    first = body["trades"][0]
    assert first["ticker"] == "ACME"
    assert first["transaction_label"] == "P - Purchase"
    assert first["transaction_description"] == "Open market or private purchase"
    assert first["transaction_side"] == "buy"
    assert first["id"] is not None

    assert client.get("/trades", params={"ticker": "beta"}).json()["count"] == 1
    sales = client.get("/trades", params={"transaction_type": "S"}).json()["trades"]
    assert [t["insider_name"] for t in sales] == ["Roe Jane"]
    assert client.get("/trades", params={"cluster": "true"}).json()["count"] == 0
    assert client.get("/trades", params={"date_from": "2024-06-12"}).json()["count"] == 2
    assert client.get("/trades", params={"limit": 1}).json()["count"] == 1


def test_list_trades_rejects_bad_limit(client):
    assert client.get("/trades", params={"limit": 0}).status_code == 422
    assert client.get("/trades", params={"limit": 5000}).status_code == 422
