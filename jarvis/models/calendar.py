from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text, UniqueConstraint, Uuid

from jarvis.db import Base, utcnow


class CalendarEvent(Base):
    """Local mirror of a Google Calendar event."""

    __tablename__ = "calendar_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    external_event_id = Column(String(1024), nullable=False)

    title = Column(String(1024), nullable=False, default="No Title")
    description = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    # RFC3339 dateTime, or a bare date for all-day events
    start_time = Column(String(64), nullable=True)
    end_time = Column(String(64), nullable=True)
    status = Column(String(20), nullable=True, default="confirmed")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "external_event_id", name="uq_calendar_events_user_external"),
    )


class CalendarMetadata(Base):
    """Calendars visible to the user (calendarList)."""

    __tablename__ = "calendar_metadata"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    calendar_id = Column(String(1024), nullable=False)

    name = Column(String(1024), nullable=True)
    description = Column(Text, nullable=True)
    color = Column(String(32), nullable=True)
    is_primary = Column(Boolean, default=False)
    is_selected = Column(Boolean, default=True)
    raw = Column("metadata", JSON, key="raw", nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "calendar_id", name="uq_calendar_metadata_user_calendar"),
    )
