from __future__ import annotations

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text

from jarvis.db import Base, utcnow

DEFAULT_PRIORITY = 5


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncTask(Base):
    """One queued mutation or reconciliation against an external provider."""

    __tablename__ = "sync_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)

    # Routing
    integration_type = Column(String(50), nullable=False)  # 'google_calendar', 'slack', ...
    operation = Column(String(50), nullable=False)  # 'create_event', 'send_message', ...
    payload = Column(JSON, nullable=False)
    resource_id = Column(String(255), nullable=True)

    # Scheduling
    priority = Column(Integer, nullable=False, default=DEFAULT_PRIORITY)  # lower runs first
    status = Column(String(20), nullable=False, default=TaskStatus.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    scheduled_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_sync_queue_pick", "status", "priority", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SyncTask(id={self.id}, {self.integration_type}.{self.operation}, "
            f"status={self.status}, attempts={self.attempts})>"
        )
