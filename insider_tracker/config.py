import os
from dataclasses import dataclass
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # If python-dotenv isn't installed or .env isn't present, that's fine.
    pass


def _env_int_or_none(name: str) -> Optional[int]:
    """Parse an optional positive integer. Blank, invalid or <= 0 means "unset"."""
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return None
    try:
        n = int(raw)
    except ValueError:
        return None
    return n if n > 0 else None


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide credentials via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Storage
    # -----------------
    # Service tier (full access). The ingestion pipeline always uses this one.
    # Preferred: INSIDER_DATABASE_URL (or DATABASE_URL) for Postgres.
    # Fallback: INSIDER_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("INSIDER_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("INSIDER_DB_PATH", "./insider_tracker.sqlite")
    )

    # Public read tier (restricted role). Only the read-only query surface uses it.
    DB_READ_DSN: str = (
        os.environ.get("INSIDER_READ_DATABASE_URL")
        or os.environ.get("INSIDER_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("INSIDER_DB_PATH", "./insider_tracker.sqlite")
    )

    # -----------------
    # SEC (EDGAR requires a descriptive User-Agent)
    # -----------------
    SEC_USER_AGENT: str = os.environ.get(
        "SEC_USER_AGENT",
        "InsiderTracker/0.1 (contact: you@example.com)",
    )
    SEC_BASE_URL: str = os.environ.get("SEC_BASE_URL", "https://www.sec.gov")
    SEC_DATA_URL: str = os.environ.get("SEC_DATA_URL", "https://data.sec.gov")

    # SEC fair-use policy: max ~10 requests/second from one client.
    SEC_MIN_INTERVAL_SECONDS: float = float(os.environ.get("SEC_MIN_INTERVAL_SECONDS", "0.1"))
    SEC_TIMEOUT_SECONDS: float = float(os.environ.get("SEC_TIMEOUT_SECONDS", "30"))

    # Current Form 4 feed. The SEC caps a page at 100 entries.
    FORM4_FEED_PAGE_SIZE: int = int(os.environ.get("FORM4_FEED_PAGE_SIZE", "100"))
    FORM4_FEED_MAX_ENTRIES: int = int(os.environ.get("FORM4_FEED_MAX_ENTRIES", "100"))

    # -----------------
    # Scrape run
    # -----------------
    # Unset = parse every listed filing.
    MAX_FILINGS: Optional[int] = _env_int_or_none("MAX_FILINGS")
    FILING_PARSE_DELAY_SECONDS: float = float(os.environ.get("FILING_PARSE_DELAY_SECONDS", "0.3"))
    ENRICH_DELAY_SECONDS: float = float(os.environ.get("ENRICH_DELAY_SECONDS", "0.1"))

    # -----------------
    # Clusters
    # -----------------
    CLUSTER_WINDOW_DAYS: int = int(os.environ.get("CLUSTER_WINDOW_DAYS", "7"))
    CLUSTER_LOOKBACK_DAYS: int = int(os.environ.get("CLUSTER_LOOKBACK_DAYS", "30"))

    # -----------------
    # Market data
    # -----------------
    YAHOO_CHART_URL: str = os.environ.get(
        "YAHOO_CHART_URL",
        "https://query1.finance.yahoo.com/v8/finance/chart",
    )
    PRICE_LOOKBACK_DAYS: int = int(os.environ.get("PRICE_LOOKBACK_DAYS", "7"))
    PRICE_BATCH_DELAY_SECONDS: float = float(os.environ.get("PRICE_BATCH_DELAY_SECONDS", "0.2"))
    PRICE_TIMEOUT_SECONDS: float = float(os.environ.get("PRICE_TIMEOUT_SECONDS", "10"))

    # Optional: EODHD as the OHLC source instead of Yahoo.
    EODHD_API_KEY: str | None = os.environ.get("EODHD_API_KEY") or None
    EODHD_BASE_URL: str = os.environ.get("EODHD_BASE_URL", "https://eodhd.com/api")


def load_config() -> Config:
    return Config()
