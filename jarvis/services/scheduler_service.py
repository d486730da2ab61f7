from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from jarvis import config
from jarvis.db import get_db
from jarvis.services.queue_processor import QueueProcessor

logger = logging.getLogger(__name__)


class SchedulerService:
    """Polls the sync queue on a fixed interval inside the API process."""

    def __init__(self, interval_seconds: Optional[int] = None):
        self.running = False
        self.interval_seconds = interval_seconds or config.QUEUE_POLL_INTERVAL_SECONDS
        self._task: Optional[asyncio.Task] = None
        self.last_result: Optional[Dict[str, Any]] = None

    async def start(self) -> None:
        """Start the poll loop."""
        if self.running:
            return

        self.running = True
        logger.info(f"Starting queue poller (every {self.interval_seconds}s)")
        self._task = asyncio.create_task(self._run_scheduler(), name="sync_queue_poller")

    async def stop(self) -> None:
        """Stop the poll loop."""
        self.running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Stopped queue poller")

    async def _run_scheduler(self) -> None:
        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Queue poller error: {e}")
            await asyncio.sleep(self.interval_seconds)

    async def run_once(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Process one batch with a fresh session."""
        async for session in get_db():
            result = await QueueProcessor(session).process_queue(user_id)
            self.last_result = result
            return result
        return {"processed": 0, "results": []}

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "last_processed": (self.last_result or {}).get("processed"),
        }


# Global scheduler instance
scheduler_service = SchedulerService()
