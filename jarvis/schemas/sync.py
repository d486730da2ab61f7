from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TaskCreate(BaseModel):
    integration_type: str
    operation: str
    payload: Dict[str, Any]
    priority: Optional[int] = Field(None, ge=0)
    scheduled_at: Optional[datetime] = None
    resource_id: Optional[str] = None


class TaskRead(BaseModel):
    id: int
    user_id: str
    integration_type: str
    operation: str
    payload: Dict[str, Any]
    resource_id: Optional[str] = None
    priority: int
    status: str
    attempts: int
    error: Optional[str] = None
    scheduled_at: datetime
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaskResult(BaseModel):
    task_id: int
    success: bool
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ProcessQueueResult(BaseModel):
    processed: int
    results: List[TaskResult]
