from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.db import as_naive_utc, utcnow
from jarvis.errors import ValidationError
from jarvis.models.sync_task import DEFAULT_PRIORITY, SyncTask, TaskStatus

logger = logging.getLogger(__name__)


class SyncQueue:
    """Durable at-least-once queue stored in ``sync_queue``."""

    def __init__(self, session: AsyncSession, clock: Callable[[], dt.datetime] = utcnow) -> None:
        self.session = session
        self.clock = clock

    async def add_task(
        self,
        user_id: str,
        integration_type: Optional[str],
        operation: Optional[str],
        payload: Optional[Dict[str, Any]],
        priority: Optional[int] = None,
        scheduled_at: Optional[dt.datetime] = None,
        resource_id: Optional[str] = None,
    ) -> SyncTask:
        """Enqueue a pending task.

        Duplicate payloads are accepted; each enqueue runs at least once.
        Raises ValidationError before writing anything when a required field
        is missing.
        """
        if not user_id:
            raise ValidationError("User ID is required")
        if not integration_type or not operation or payload is None:
            raise ValidationError("Integration type, operation, and payload are required")
        if not isinstance(payload, dict):
            raise ValidationError("Payload must be an object")

        now = self.clock()
        task = SyncTask(
            user_id=user_id,
            integration_type=integration_type,
            operation=operation,
            payload=payload,
            resource_id=resource_id,
            priority=DEFAULT_PRIORITY if priority is None else priority,
            status=TaskStatus.PENDING.value,
            attempts=0,
            scheduled_at=as_naive_utc(scheduled_at) or now,
            created_at=now,
            updated_at=now,
        )
        self.session.add(task)
        await self.session.commit()
        logger.info(
            f"Enqueued task {task.id} ({integration_type}.{operation}) "
            f"for user {user_id} at priority {task.priority}"
        )
        return task

    async def get_task(self, task_id: int, user_id: Optional[str] = None) -> Optional[SyncTask]:
        stmt = select(SyncTask).where(SyncTask.id == task_id)
        if user_id:
            stmt = stmt.where(SyncTask.user_id == user_id)
        # The processor writes through Core updates; always reload the row
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def list_tasks(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[SyncTask]:
        stmt = select(SyncTask).where(SyncTask.user_id == user_id)
        if status:
            stmt = stmt.where(SyncTask.status == status)
        stmt = stmt.order_by(SyncTask.created_at.desc(), SyncTask.id.desc()).limit(limit)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())
