from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.auth import get_current_user_id
from jarvis.db import get_db
from jarvis.errors import ValidationError
from jarvis.models.sync_task import TaskStatus
from jarvis.schemas.sync import ProcessQueueResult, TaskCreate, TaskRead
from jarvis.services.queue_processor import QueueProcessor
from jarvis.services.reconciliation_service import ReconciliationService
from jarvis.services.scheduler_service import scheduler_service
from jarvis.services.sync_queue_service import SyncQueue

router = APIRouter(prefix="/api/sync", tags=["Sync"])


@router.post("/add-task", response_model=TaskRead, status_code=201)
async def add_task(
    request: TaskCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Enqueue a provider mutation for background processing."""
    try:
        return await SyncQueue(db).add_task(
            user_id,
            request.integration_type,
            request.operation,
            request.payload,
            priority=request.priority,
            scheduled_at=request.scheduled_at,
            resource_id=request.resource_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.post("/process-queue", response_model=ProcessQueueResult)
async def process_queue(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Run one batch of the caller's queued tasks.

    Cross-user draining belongs to the poller and scripts/process_queue.py.
    """
    return await QueueProcessor(db).process_queue(user_id)


@router.post("/sync-all")
async def sync_all(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Pull every connected provider into the local mirrors."""
    return await ReconciliationService(db).sync_all(user_id)


@router.get("/tasks", response_model=List[TaskRead])
async def list_tasks(
    status: Optional[TaskStatus] = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await SyncQueue(db).list_tasks(user_id, status.value if status else None, limit)


@router.get("/tasks/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: int = Path(..., description="Queue task ID"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    task = await SyncQueue(db).get_task(task_id, user_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return task


@router.get("/status")
async def get_poller_status() -> Dict[str, Any]:
    """State of the in-process queue poller."""
    return scheduler_service.get_status()
