#!/usr/bin/env python3
"""
Print the highest-scored postings from the job store.

    python scripts/print_top_matches.py [LIMIT] [--db PATH]

DB path: --db, else sqlite_path from the CONFIG_PATH config, else local/state/jobs.db.
"""

import argparse
import os
import sys
from datetime import datetime
from pathlib import Path

from modules.job_search.lib.config import ConfigError, load_settings
from modules.job_search.lib.db import JobStore

PROJECT_ROOT = Path(__file__).resolve().parent.parent  # ../scripts → project root
DEFAULT_DB = PROJECT_ROOT / "local" / "state" / "jobs.db"


def resolve_db_path(explicit: str | None) -> str:
    if explicit:
        return explicit
    if os.getenv("CONFIG_PATH"):
        try:
            return load_settings().sqlite_path
        except ConfigError as e:
            print(f"Ignoring config: {e}", file=sys.stderr)
    return str(DEFAULT_DB)


def format_timestamp(iso_str: str) -> str:
    """Convert ISO timestamp to readable local format."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
        return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
    except ValueError:
        return iso_str


def main() -> int:
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    ap.add_argument("limit", nargs="?", type=int, default=15)
    ap.add_argument("--db", help="Path to the SQLite job store.")
    args = ap.parse_args()

    if args.limit <= 0:
        print(f"Invalid limit: {args.limit}. Using default (15).", file=sys.stderr)
        args.limit = 15

    db_path = resolve_db_path(args.db)
    if not os.path.exists(db_path):
        print(f"Database not found: {db_path}")
        return 1

    store = JobStore(db_path)
    stats = store.stats()
    print(f"\n{db_path}  (total {stats.total}, analyzed {stats.analyzed}, notified {stats.notified})")
    print("=" * 80)

    rows = store.top_matches(args.limit)
    if not rows:
        print("  (no scored postings)")
        return 0

    for i, p in enumerate(rows, 1):
        flag = "sent" if p.notified else "    "
        print(f"{i:2}. [{p.match_score:5.1f}] {flag} {p.title} - {p.company or '?'} ({p.source})")
        print(f"    {p.url}")
        print(f"    {format_timestamp(p.created_at)}  {p.match_reasoning}")
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
