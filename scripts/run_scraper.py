import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from insider_tracker.config import load_config
from insider_tracker.pipeline.orchestrator import run_ingestion


def main() -> None:
    p = argparse.ArgumentParser(description="Run one Form 4 ingestion (list, parse, persist, clusters, enrich).")
    p.add_argument("--max-entries", type=int, default=None, help="Feed entries to list (default FORM4_FEED_MAX_ENTRIES)")
    p.add_argument("--max-filings", type=int, default=None, help="Cap on filings parsed (default MAX_FILINGS / all)")
    args = p.parse_args()

    cfg = load_config()
    if args.max_entries:
        cfg = replace(cfg, FORM4_FEED_MAX_ENTRIES=args.max_entries)
    if args.max_filings:
        cfg = replace(cfg, MAX_FILINGS=args.max_filings)

    summary = run_ingestion(cfg)
    print(json.dumps(summary, indent=2, sort_keys=True))
    if not summary.get("success"):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
