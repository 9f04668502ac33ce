import argparse
import sys
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from insider_tracker.compute.clusters import recompute_clusters
from insider_tracker.config import load_config
from insider_tracker.db import connect, init_db
from insider_tracker.sec.transaction_codes import transaction_label
from insider_tracker.store import TradeStore


def main() -> None:
    p = argparse.ArgumentParser(description="Re-run cluster detection over stored trades (no scraping).")
    p.add_argument("--lookback-days", type=int, default=None, help="Window to recompute (default CLUSTER_LOOKBACK_DAYS)")
    args = p.parse_args()

    cfg = load_config()
    if args.lookback_days:
        cfg = replace(cfg, CLUSTER_LOOKBACK_DAYS=args.lookback_days)

    init_db(cfg.DB_DSN)
    with connect(cfg.DB_DSN) as conn:
        windows = recompute_clusters(TradeStore(conn), cfg)

    if not windows:
        print(f"No clusters in the last {cfg.CLUSTER_LOOKBACK_DAYS} days")
        return

    for w in sorted(windows, key=lambda w: (w.anchor_date, w.ticker)):
        print(
            f"{w.ticker:<8} {transaction_label(w.transaction_type):<24} {w.anchor_date}..{w.end_date} "
            f"insiders={w.size} trades={len(w.members)} value=${w.total_value:,.0f}"
        )
        for name in w.insiders:
            print(f"    - {name}")
    print(f"{len(windows)} clusters")


if __name__ == "__main__":
    main()
