import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import uvicorn


def main() -> None:
    p = argparse.ArgumentParser(description="Serve the trigger/query API.")
    p.add_argument("--host", default=os.environ.get("API_HOST", "127.0.0.1"))
    p.add_argument("--port", type=int, default=int(os.environ.get("API_PORT", "8000")))
    p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development)")
    args = p.parse_args()

    uvicorn.run("insider_tracker.api.server:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
