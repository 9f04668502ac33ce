from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Sequence

from insider_tracker.config import Config
from insider_tracker.models import ClusterWindow, GroupKey, TradeRecord
from insider_tracker.store import TradeStore
from insider_tracker.util.time import date_from_iso, days_ago_iso


def _debug(msg: str) -> None:
    print(f"[clusters] {msg}")


def build_time_buckets(records: Sequence[TradeRecord], window_days: int = 7) -> List[ClusterWindow]:
    """Greedy fixed-anchor bucketing of one (ticker, transaction_type) group.

    Records are taken in filing-date order (stable). Each record joins the first
    bucket whose anchor is within window_days (inclusive), which extends that
    bucket's end date; the anchor itself never moves. Otherwise the record opens
    a new bucket anchored at its own filing date.

    Records on days 0, 5 and 7 share the day-0 bucket; a record on day 12 opens a
    new bucket even though it is within 7 days of the day-7 member.
    """
    ordered = sorted(records, key=lambda r: r.filing_date)
    buckets: List[ClusterWindow] = []
    anchors: List[date] = []
    for rec in ordered:
        d = date_from_iso(rec.filing_date)
        for i, anchor in enumerate(anchors):
            if abs((d - anchor).days) <= window_days:
                bucket = buckets[i]
                bucket.members.append(rec)
                if rec.filing_date > bucket.end_date:
                    bucket.end_date = rec.filing_date
                break
        else:
            anchors.append(d)
            buckets.append(
                ClusterWindow(
                    ticker=rec.ticker,
                    transaction_type=rec.transaction_type,
                    anchor_date=rec.filing_date,
                    end_date=rec.filing_date,
                    members=[rec],
                )
            )
    return buckets


def group_records(records: Iterable[TradeRecord]) -> Dict[GroupKey, List[TradeRecord]]:
    groups: Dict[GroupKey, List[TradeRecord]] = {}
    for rec in records:
        groups.setdefault(rec.group_key, []).append(rec)
    return groups


def detect_clusters(records: Sequence[TradeRecord], window_days: int = 7) -> List[ClusterWindow]:
    """Windows with at least two distinct insiders, across all (ticker, type) groups."""
    out: List[ClusterWindow] = []
    for group in group_records(records).values():
        if len({r.insider_name for r in group}) < 2:
            continue
        for bucket in build_time_buckets(group, window_days):
            if bucket.is_cluster:
                out.append(bucket)
    return out


def recompute_clusters(store: TradeStore, cfg: Config, today: date | None = None) -> List[ClusterWindow]:
    """Full recompute of cluster flags over the lookback window.

    Every flag in the window is reset first, so clusters that no longer hold
    are cleared. Reset and re-flag happen in one savepoint.
    """
    since = days_ago_iso(cfg.CLUSTER_LOOKBACK_DAYS, today)
    records = store.load_since(since)
    windows = detect_clusters(records, cfg.CLUSTER_WINDOW_DAYS)
    _debug(f"since={since} records={len(records)} clusters={len(windows)}")

    with store.atomic("cluster_flags"):
        store.reset_cluster_flags(since)
        for w in windows:
            for m in w.members:
                if m.trade_id is None:
                    continue
                store.update_by_id(m.trade_id, {"is_cluster": True, "cluster_size": w.size})
            _debug(
                f"{w.ticker} {w.transaction_type} {w.anchor_date}..{w.end_date}: "
                f"{w.size} insiders, {len(w.members)} trades"
            )
    return windows
