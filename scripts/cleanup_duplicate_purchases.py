"""Find and remove duplicate purchases of the same beat by the same user.

Usage:
    python scripts/cleanup_duplicate_purchases.py --admin-id <id> [--dry-run]

Each duplicate group keeps one canonical purchase (the completed one, or
the oldest when none is completed) and loses the rest together with their
payment records.  Groups with more than one completed purchase are only
reported.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from beatstore.database import async_session, dispose_engine, init_db
from beatstore.models import *  # noqa: F401, F403
from beatstore.services import duplicate_sweeper

logger = logging.getLogger("cleanup_duplicate_purchases")


async def _run(admin_id: str, dry_run: bool) -> dict:
    await init_db()
    try:
        async with async_session() as db:
            return await duplicate_sweeper.sweep(db, admin_id, dry_run=dry_run)
    finally:
        await dispose_engine()


def _print_report(report: dict) -> None:
    mode = "DRY RUN" if report["dry_run"] else "APPLIED"
    print(f"[{mode}] duplicate groups found: {report['groups_found']}")
    for item in report["resolved"]:
        print(
            f"  user={item['user_id']} beat={item['beat_id']} keep={item['kept_id']} "
            f"delete={', '.join(item['deleted_ids']) or '-'}"
        )
    for item in report["violations"]:
        print(f"  NOT RESOLVED user={item['user_id']} beat={item['beat_id']}: {item['detail']}")
    print(f"Purchases {'to delete' if report['dry_run'] else 'deleted'}: {report['purchases_deleted']}")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove duplicate active purchases.")
    parser.add_argument("--admin-id", required=True, help="Admin identity recorded in the audit log.")
    parser.add_argument("--dry-run", action="store_true", help="Report what would be deleted without deleting.")
    parser.add_argument("--json", action="store_true", help="Print the raw report as JSON.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = _parse_args(argv)
    report = asyncio.run(_run(args.admin_id, args.dry_run))
    if args.json:
        print(json.dumps(report, indent=2, default=str))
    else:
        _print_report(report)
    return 1 if report["violations"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
