from __future__ import annotations

import datetime as dt
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis import config
from jarvis.db import utcnow
from jarvis.errors import DatabaseError, IntegrationMissingError, JarvisError
from jarvis.models.sync_task import SyncTask, TaskStatus
from jarvis.services import task_handlers
from jarvis.services.task_handlers import Handler, TaskContext
from jarvis.services.token_service import TokenStore

logger = logging.getLogger(__name__)

FIXED = "fixed"
EXPONENTIAL = "exponential"


@dataclass
class RetryPolicy:
    """How failed tasks are rescheduled.

    ``fail_fast`` sends errors that cannot succeed on another attempt
    (unsupported operation, bad payload, missing or unrefreshable
    credentials) straight to ``failed``.
    """

    max_attempts: int = 3
    base_delay: dt.timedelta = dt.timedelta(minutes=5)
    strategy: str = FIXED
    max_delay: dt.timedelta = dt.timedelta(hours=1)
    jitter: bool = False
    fail_fast: bool = True

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        strategy = config.QUEUE_BACKOFF_STRATEGY.lower()
        return cls(
            max_attempts=config.QUEUE_MAX_ATTEMPTS,
            base_delay=dt.timedelta(seconds=config.QUEUE_RETRY_DELAY_SECONDS),
            strategy=strategy,
            max_delay=dt.timedelta(seconds=config.QUEUE_MAX_RETRY_DELAY_SECONDS),
            jitter=strategy == EXPONENTIAL,
            fail_fast=config.QUEUE_FAIL_FAST,
        )

    def next_delay(self, attempts: int) -> dt.timedelta:
        """Delay before the retry that follows failure number ``attempts``."""
        if self.strategy != EXPONENTIAL:
            return self.base_delay

        # base * 2^(n-1) + random(0, base), capped at max_delay
        delay = self.base_delay * (2 ** max(attempts - 1, 0))
        if self.jitter:
            delay += self.base_delay * random.uniform(0, 1)
        return min(delay, self.max_delay)

    def is_terminal(self, attempts: int, error: JarvisError) -> bool:
        if self.fail_fast and not error.retryable:
            return True
        return attempts >= self.max_attempts


class QueueProcessor:
    """Drains eligible ``sync_queue`` rows and dispatches them to provider handlers.

    A failed task rolls back ``session`` so the handler's partial writes are
    discarded. That rollback expires every instance held by the session,
    including ones loaded by the caller; re-read them (or keep plain values
    such as ids) before touching their attributes again.
    """

    def __init__(
        self,
        session: AsyncSession,
        token_store: Optional[TokenStore] = None,
        handlers: Optional[Dict[Any, Handler]] = None,
        policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], dt.datetime] = utcnow,
        batch_size: Optional[int] = None,
    ) -> None:
        self.session = session
        self.http_client = http_client
        self.clock = clock
        self.token_store = token_store or TokenStore(session, http_client=http_client, clock=clock)
        self.handlers = handlers
        self.policy = policy or RetryPolicy.from_config()
        self.batch_size = batch_size or config.QUEUE_BATCH_SIZE

    async def process_queue(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Run one batch.

        Tasks are picked by priority, then age, and executed one at a time in
        that order. Returns ``{"processed": n, "results": [...]}``; with
        nothing pending this is a no-op returning ``processed == 0``.
        """
        task_ids = await self._select_eligible(user_id)
        if not task_ids:
            logger.debug("No pending tasks to process")
            return {"processed": 0, "results": []}

        results: List[Dict[str, Any]] = []
        for task_id in task_ids:
            outcome = await self._process_task(task_id)
            if outcome is not None:
                results.append(outcome)

        succeeded = sum(1 for r in results if r["success"])
        logger.info(f"Processed {len(results)} tasks ({succeeded} succeeded)")
        return {"processed": len(results), "results": results}

    async def _select_eligible(self, user_id: Optional[str]) -> List[int]:
        stmt = select(SyncTask.id).where(
            SyncTask.status == TaskStatus.PENDING.value,
            SyncTask.scheduled_at <= self.clock(),
        )
        if user_id:
            stmt = stmt.where(SyncTask.user_id == user_id)
        stmt = stmt.order_by(
            SyncTask.priority.asc(), SyncTask.created_at.asc(), SyncTask.id.asc()
        ).limit(self.batch_size)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _claim(self, task_id: int) -> bool:
        """pending -> processing as a single conditional update."""
        result = await self.session.execute(
            update(SyncTask)
            .where(SyncTask.id == task_id, SyncTask.status == TaskStatus.PENDING.value)
            .values(status=TaskStatus.PROCESSING.value, updated_at=self.clock())
        )
        await self.session.commit()
        return result.rowcount == 1

    def _resolve(self, integration_type: str, operation: str) -> Handler:
        if self.handlers and (integration_type, operation) in self.handlers:
            return self.handlers[(integration_type, operation)]
        return task_handlers.resolve(integration_type, operation)

    async def _process_task(self, task_id: int) -> Optional[Dict[str, Any]]:
        if not await self._claim(task_id):
            logger.info(f"Task {task_id} was claimed by another worker, skipping")
            return None

        result = await self.session.execute(
            select(SyncTask)
            .where(SyncTask.id == task_id)
            .execution_options(populate_existing=True)
        )
        task = result.scalar_one()
        # A rollback expires ORM state; keep plain copies of what we need
        user_id = task.user_id
        integration_type = task.integration_type
        operation = task.operation
        payload = dict(task.payload or {})
        attempts = task.attempts or 0

        logger.info(
            f"Processing task {task_id} ({integration_type}.{operation}) "
            f"for user {user_id}, attempt {attempts + 1}"
        )
        try:
            handler = self._resolve(integration_type, operation)
            token = await self.token_store.get_valid_token(user_id, integration_type)
            if token is None:
                raise IntegrationMissingError(integration_type, user_id)

            ctx = TaskContext(self.session, user_id, token, self.http_client)
            output = await handler(ctx, payload)
            await self._mark_completed(task_id)
        except JarvisError as e:
            await self._mark_failed(task_id, attempts, e)
            return {"task_id": task_id, "success": False, "error": e.message}
        except SQLAlchemyError as e:
            logger.exception(f"Database error while processing task {task_id}")
            error = DatabaseError(str(e))
            await self._mark_failed(task_id, attempts, error)
            return {"task_id": task_id, "success": False, "error": error.message}
        except Exception as e:
            logger.exception(f"Unexpected error while processing task {task_id}")
            error = JarvisError(str(e) or type(e).__name__)
            await self._mark_failed(task_id, attempts, error)
            return {"task_id": task_id, "success": False, "error": error.message}

        logger.info(f"Task {task_id} completed")
        return {"task_id": task_id, "success": True, "result": output}

    async def _mark_completed(self, task_id: int) -> None:
        now = self.clock()
        await self.session.execute(
            update(SyncTask)
            .where(SyncTask.id == task_id)
            .values(
                status=TaskStatus.COMPLETED.value,
                completed_at=now,
                error=None,
                updated_at=now,
            )
        )
        await self.session.commit()

    async def _mark_failed(self, task_id: int, attempts: int, error: JarvisError) -> None:
        # Discard whatever the handler left half-written
        await self.session.rollback()

        now = self.clock()
        attempts += 1
        values: Dict[str, Any] = {"attempts": attempts, "error": error.message, "updated_at": now}
        if self.policy.is_terminal(attempts, error):
            values["status"] = TaskStatus.FAILED.value
            logger.error(f"Task {task_id} failed permanently after {attempts} attempts: {error.message}")
        else:
            values["status"] = TaskStatus.PENDING.value
            values["scheduled_at"] = now + self.policy.next_delay(attempts)
            logger.warning(
                f"Task {task_id} failed (attempt {attempts}/{self.policy.max_attempts}), "
                f"retrying at {values['scheduled_at'].isoformat()}: {error.message}"
            )

        await self.session.execute(
            update(SyncTask).where(SyncTask.id == task_id).values(**values)
        )
        await self.session.commit()
