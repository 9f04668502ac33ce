"""Insider Tracker (SEC Form 4) - ingestion + cluster detection.

The core is a single sequential pipeline:
- list recent Form 4 filings from the SEC current feed
- parse each filing's ownershipDocument into trades
- upsert trades on their natural key
- recompute insider clusters over a rolling window
- enrich trades with industry and price data (best-effort)

The UI / bot layers are out of scope; they read the insider_trades table.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
