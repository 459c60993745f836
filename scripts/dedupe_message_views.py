#!/usr/bin/env python
"""
Collapse duplicate message views to one entry per viewer (keeping the most recent).

Usage:
    python scripts/dedupe_message_views.py [--dry-run]

Environment variables (same as app.py):
    USE_SUPABASE, SUPABASE_URL, SUPABASE_KEY   (hosted store)
    DATABASE_URL                               (local store fallback)
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app import create_app  # noqa: E402  reuse the app's store selection
from daydrop.recorder import collapse_views, deduplicate_all_views  # noqa: E402
from daydrop.repository import MESSAGES, get_content_repository  # noqa: E402


def dedupe_all(dry_run: bool = False) -> dict:
    app = create_app()
    with app.app_context():
        repository = get_content_repository()
        if not dry_run:
            return deduplicate_all_views(repository)

        print("🔍 Fetching messages...")
        summary = {"messages": 0, "updated": 0, "removed": 0}
        for message in repository.list_all(MESSAGES):
            summary["messages"] += 1
            views = message.get("views") or []
            collapsed = collapse_views(views)
            if collapsed == views:
                continue
            print(f"  • {message['id']}: {len(views)} → {len(collapsed)} views")
            summary["updated"] += 1
            summary["removed"] += len(views) - len(collapsed)
        return summary


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--dry-run", action="store_true", help="report duplicates without writing")
    args = parser.parse_args(argv)

    summary = dedupe_all(dry_run=args.dry_run)

    print("\n✅ View cleanup complete." if not args.dry_run else "\n✅ Dry run complete.")
    print(f"    Messages inspected: {summary['messages']}")
    print(f"    Messages updated:   {summary['updated']}")
    print(f"    Views removed:      {summary['removed']}")
    if summary["updated"] == 0:
        print("    No updates were necessary.")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit("\n⚠️ Cleanup cancelled by user.")
