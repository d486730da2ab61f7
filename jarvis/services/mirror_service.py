from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.db import utcnow
from jarvis.models.calendar import CalendarEvent


def _insert_for(session: AsyncSession, model):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")


async def upsert_many(
    session: AsyncSession,
    model,
    rows: Iterable[Dict[str, Any]],
    conflict_columns: Sequence[str],
) -> int:
    """Bulk upsert ``rows`` into ``model`` keyed on ``conflict_columns``.

    Uses ``INSERT ... ON CONFLICT DO UPDATE`` so re-running a sync with
    unchanged provider data leaves exactly one row per key. The caller owns
    the transaction; nothing is committed here.
    """
    rows = list(rows)
    if not rows:
        return 0

    now = utcnow()
    values: List[Dict[str, Any]] = [{**row, "updated_at": now} for row in rows]

    stmt = _insert_for(session, model).values(values)
    # Never overwrite the surrogate key or the original creation time
    update_cols = {
        c.key: c
        for c in stmt.excluded
        if not c.primary_key and c.key not in conflict_columns and c.key != "created_at"
    }
    stmt = stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=update_cols)

    await session.execute(stmt)
    return len(values)


def canonical_event(user_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
    """Map a Google Calendar event resource onto a ``calendar_events`` row."""
    start = event.get("start") or {}
    end = event.get("end") or {}
    return {
        "user_id": user_id,
        "external_event_id": event["id"],
        "title": event.get("summary") or "No Title",
        "description": event.get("description"),
        "location": event.get("location"),
        "start_time": start.get("dateTime") or start.get("date"),
        "end_time": end.get("dateTime") or end.get("date"),
        "status": event.get("status") or "confirmed",
    }


async def reconcile_events(
    session: AsyncSession, user_id: str, events: Iterable[Dict[str, Any]]
) -> Dict[str, int]:
    """Apply provider events to the local mirror.

    Cancelled events are deleted; everything else is upserted on
    ``(user_id, external_event_id)``.
    """
    upserts: Dict[str, Dict[str, Any]] = {}
    cancelled: List[str] = []
    for event in events:
        event_id = event.get("id")
        if not event_id:
            continue
        if event.get("status") == "cancelled":
            cancelled.append(event_id)
            upserts.pop(event_id, None)
        else:
            # Later pages win when the same event appears twice
            upserts[event_id] = canonical_event(user_id, event)

    deleted = 0
    if cancelled:
        result = await session.execute(
            delete(CalendarEvent).where(
                CalendarEvent.user_id == user_id,
                CalendarEvent.external_event_id.in_(cancelled),
            )
        )
        deleted = result.rowcount or 0

    upserted = await upsert_many(
        session, CalendarEvent, upserts.values(), ("user_id", "external_event_id")
    )
    return {"upserted": upserted, "deleted": deleted, "cancelled": len(cancelled)}


async def delete_event(session: AsyncSession, user_id: str, external_event_id: str) -> int:
    result = await session.execute(
        delete(CalendarEvent).where(
            CalendarEvent.user_id == user_id,
            CalendarEvent.external_event_id == external_event_id,
        )
    )
    return result.rowcount or 0
