from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, String, UniqueConstraint, Uuid

from jarvis.db import Base, utcnow


class SlackChannel(Base):
    __tablename__ = "slack_channels"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    workspace_id = Column(String(64), nullable=False)
    channel_id = Column(String(64), nullable=False)
    channel_name = Column(String(255), nullable=False)
    is_private = Column(Boolean, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "workspace_id", "channel_id", name="uq_slack_channels_user_channel"),
    )


class NotionDatabase(Base):
    __tablename__ = "notion_databases"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    database_id = Column(String(64), nullable=False)
    title = Column(String(1024), nullable=False, default="Untitled")
    property_mappings = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "database_id", name="uq_notion_databases_user_database"),
    )
