#!/usr/bin/env python3
"""Run one sync-queue batch, for cron or manual use.

    python scripts/process_queue.py [--user USER_ID] [--sync-all USER_ID]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from jarvis import config  # noqa: E402
from jarvis.db import AsyncSessionLocal, engine  # noqa: E402
from jarvis.services.queue_processor import QueueProcessor  # noqa: E402
from jarvis.services.reconciliation_service import ReconciliationService  # noqa: E402

logger = logging.getLogger("process_queue")


async def main(user_id: str | None, sync_user: str | None) -> int:
    async with AsyncSessionLocal() as session:
        if sync_user:
            result = await ReconciliationService(session).sync_all(sync_user)
            print(json.dumps(result, indent=2, default=str))

        result = await QueueProcessor(session).process_queue(user_id)
        print(json.dumps(result, indent=2, default=str))

    await engine.dispose()
    failed = [r for r in result["results"] if not r["success"]]
    return 1 if failed else 0


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL.upper())
    parser = argparse.ArgumentParser(description="Process pending sync tasks")
    parser.add_argument("--user", help="Only process tasks for this user id")
    parser.add_argument("--sync-all", metavar="USER_ID", help="Reconcile this user's providers first")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.user, args.sync_all)))
