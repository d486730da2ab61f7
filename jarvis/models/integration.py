from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, String, Text, UniqueConstraint, Uuid

from jarvis.db import Base, utcnow


class IntegrationProvider(str, Enum):
    """Providers a user can connect. Values are the stored ``provider`` keys."""

    GOOGLE_CALENDAR = "google_calendar"
    SLACK = "slack"
    NOTION = "notion"
    FOOD_DELIVERY = "food_delivery"
    RIDE_SERVICE = "ride_service"


class UserIntegration(Base):
    """OAuth credential set linking one user to one external provider."""

    __tablename__ = "user_integrations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    provider = Column(String(50), nullable=False)

    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)

    # Incremental sync cursor (Google Calendar nextSyncToken)
    sync_token = Column(Text, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)

    provider_user_id = Column(String(255), nullable=True)
    integration_metadata = Column("metadata", JSON, nullable=True, default=dict)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_user_integrations_user_provider"),
    )

    def __repr__(self) -> str:
        return f"<UserIntegration(user_id={self.user_id}, provider={self.provider})>"
