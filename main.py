#!/usr/bin/env python3
"""
PulseCount -- accounts, one-per-visitor voting and visitor counters.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 5000
  python main.py serve --reload
  python main.py stats
  python main.py stats --json

Environment variables (see core/config.py for the full list):
  SECRET_KEY    JWT signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL  SQLAlchemy URL of the document store. Defaults to a SQLite file.
"""

import argparse
import json

import uvicorn

from core.config import get_settings
from core.documents import DocumentStore
from engagement.tracker import EngagementTracker


def _serve(args: argparse.Namespace) -> None:
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)


def _stats(args: argparse.Namespace) -> None:
    """Print account, visitor and vote counts from the configured store.

    Read-only: a store without a tally reports zero votes and is left as is.
    """
    settings = get_settings()
    store = DocumentStore(settings.database_url)
    try:
        tracker = EngagementTracker.from_settings(store, settings)
        tracker.hydrate(create_missing=False)
        counts = tracker.counts()
        tally = tracker.tally()
    finally:
        store.close()

    if args.json:
        print(
            json.dumps(
                {
                    "users": counts.users,
                    "visitors": counts.visitors,
                    "realtimeVisitors": counts.realtime_visitors,
                    "totalVisits": counts.total_visits,
                    "votes": {"support": tally.support, "oppose": tally.oppose},
                },
                indent=2,
            )
        )
        return

    print(f"  Accounts           {counts.users}")
    print(f"  Visitors (24h)     {counts.visitors}")
    print(f"  Live visitors      {counts.realtime_visitors}")
    print(f"  Total visits       {counts.total_visits}")
    print(f"  Votes              support={tally.support} oppose={tally.oppose}")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="PulseCount -- accounts, voting and visitor counters.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    serve.set_defaults(func=_serve)

    stats = sub.add_parser("stats", help="Print current counts from the store")
    stats.add_argument("--json", action="store_true", help="Output JSON")
    stats.set_defaults(func=_stats)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
