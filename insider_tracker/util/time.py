from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def days_ago_iso(days: int, today: date | None = None) -> str:
    base = today or utc_today()
    return (base - timedelta(days=int(days))).isoformat()


def date_from_iso(s: str) -> date:
    """Parse the YYYY-MM-DD prefix of an ISO date/datetime string."""
    return date.fromisoformat(str(s).strip()[:10])
