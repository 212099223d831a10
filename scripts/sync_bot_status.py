#!/usr/bin/env python3
"""
Reconcile bot status and usage for sessions with Recall.ai.

Syncs every session whose bot is still running or has no recorded usage,
or a single session.

Usage:
    python scripts/sync_bot_status.py
    python scripts/sync_bot_status.py --session-id <id>
    python scripts/sync_bot_status.py --organization-id <org> --limit 20
"""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from meeting_bots.api.storage import SessionStorage
from meeting_bots.config import BotServiceConfig
from meeting_bots.providers import build_gateway
from meeting_bots.services.status_sync import BotStatusSyncService


async def run(args: argparse.Namespace) -> int:
    config = BotServiceConfig.from_env()
    if not config.recall_api_key:
        print("RECALL_AI_API_KEY is not set")
        return 1

    service = BotStatusSyncService(SessionStorage(config), build_gateway(config), config)

    if args.session_id:
        results = [await service.sync_one(args.session_id)]
    else:
        results = await service.sync_all(
            user=args.user,
            organization_id=args.organization_id,
            limit=args.limit,
        )

    print(f"\nSynced {len(results)} session(s):\n")
    for result in results:
        line = f"  {result.session_id}: {result.status}"
        if result.bot_status:
            line += f" ({result.previous_status} -> {result.bot_status})"
        if result.billable_minutes:
            line += f", {result.billable_minutes} min, ${result.cost:.2f}"
        if result.error or result.reason:
            line += f" - {result.error or result.reason}"
        print(line)

    updated = sum(1 for r in results if r.updated)
    failed = sum(1 for r in results if r.status == "error")
    print(f"\nUpdated: {updated}  Errors: {failed}")
    return 1 if failed else 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--session-id", help="Sync a single session")
    parser.add_argument("--user", help="Only sessions of this user")
    parser.add_argument("--organization-id", help="Only sessions of this organization")
    parser.add_argument("--limit", type=int, default=None, help="Maximum sessions to sync")
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
