#!/usr/bin/env python3
"""
Sales Analytics: launch the web dashboard.

Usage:
    python main.py                          # http://localhost:8000
    python main.py --port 9000              # http://localhost:9000
    python main.py --host 127.0.0.1         # bind to localhost only
    python main.py --data /path/to/sales.csv
    python main.py --data https://example.org/Warehouse_and_Retail_Sales.csv
    python main.py --votes-db /var/lib/sales/votes.sqlite
    python main.py --reload                 # auto-reload on code changes
"""

from __future__ import annotations

import argparse
import os
import sys
import webbrowser
from pathlib import Path


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Launch the Sales Analytics web dashboard.",
    )
    parser.add_argument(
        "--host", default=os.getenv("APP_HOST", "127.0.0.1"),
        help="Bind address (default: 127.0.0.1 or APP_HOST env var)",
    )
    parser.add_argument(
        "--port", type=int, default=int(os.getenv("APP_PORT", "8000")),
        help="Port to listen on (default: 8000 or APP_PORT env var)",
    )
    parser.add_argument(
        "--data", default=None,
        help="CSV path or URL (default: data/Warehouse_and_Retail_Sales.csv "
             "or APP_DATA_SOURCE env var)",
    )
    parser.add_argument(
        "--votes-db", type=Path, default=None,
        help="SQLite file for votes (default: votes.sqlite or APP_VOTES_DB_PATH env var)",
    )
    parser.add_argument(
        "--reload", action="store_true",
        help="Enable auto-reload on file changes (development mode)",
    )
    parser.add_argument(
        "--no-browser", action="store_true",
        help="Don't open a browser window automatically",
    )
    args = parser.parse_args()

    # Settings are read by api.app at import time, so pass them via env.
    if args.data is not None:
        os.environ["APP_DATA_SOURCE"] = args.data
    if args.votes_db is not None:
        os.environ["APP_VOTES_DB_PATH"] = str(args.votes_db)

    source = os.getenv("APP_DATA_SOURCE", "data/Warehouse_and_Retail_Sales.csv")
    if not _is_url(source) and not Path(source).exists():
        print(f"Warning: dataset not found at {source}")
        print("  The dashboard will start with a 'No data' page.")
        print("  Pass --data /path/to/sales.csv or a URL.")
        print()

    try:
        import uvicorn
    except ImportError:
        print("Error: uvicorn is not installed.")
        print("  pip install uvicorn[standard]")
        sys.exit(1)

    url = f"http://{'localhost' if args.host == '0.0.0.0' else args.host}:{args.port}"
    print(f"Starting Sales Analytics at {url}")
    print(f"Dataset: {source}")
    print(f"Votes:   {os.getenv('APP_VOTES_DB_PATH', 'votes.sqlite')}")
    print()

    if not args.no_browser:
        # Open browser after a short delay to let the server start
        import threading
        threading.Timer(1.5, webbrowser.open, args=(url,)).start()

    uvicorn.run(
        "api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
