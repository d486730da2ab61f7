from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from jarvis.db import utcnow
from jarvis.errors import SyncTokenExpiredError, ValidationError
from jarvis.models.calendar import CalendarEvent, CalendarMetadata
from jarvis.models.integration import IntegrationProvider
from jarvis.services import mirror_service
from jarvis.services.provider_client import ProviderClient, error_message

GOOGLE_CALENDAR_BASE_URL = "https://www.googleapis.com/calendar/v3"
PRIMARY_CALENDAR = "primary"

logger = logging.getLogger(__name__)


def _rfc3339(value: dt.datetime) -> str:
    return value.replace(microsecond=0).isoformat() + "Z"


def _events_path(calendar_id: str, event_id: Optional[str] = None) -> str:
    path = f"/calendars/{quote(calendar_id, safe='')}/events"
    if event_id:
        path += f"/{quote(event_id, safe='')}"
    return path


class GoogleCalendarService(ProviderClient):
    """Google Calendar adapter with write-through to ``calendar_events``."""

    provider = IntegrationProvider.GOOGLE_CALENDAR.value
    base_url = GOOGLE_CALENDAR_BASE_URL

    async def list_calendars(self, access_token: str) -> List[Dict[str, Any]]:
        """Return the user's calendar list and mirror it into ``calendar_metadata``."""
        data = await self._request("GET", "/users/me/calendarList", access_token)
        calendars = data.get("items", [])

        rows = [
            {
                "user_id": self.user_id,
                "calendar_id": calendar["id"],
                "name": calendar.get("summary"),
                "description": calendar.get("description"),
                "color": calendar.get("backgroundColor"),
                "is_primary": bool(calendar.get("primary", False)),
                "is_selected": True,
                "raw": calendar,
            }
            for calendar in calendars
            if calendar.get("id")
        ]
        await mirror_service.upsert_many(
            self.session, CalendarMetadata, rows, ("user_id", "calendar_id")
        )
        await self.session.commit()
        return calendars

    async def list_events(
        self,
        access_token: str,
        calendar_id: str = PRIMARY_CALENDAR,
        time_min: Optional[dt.datetime] = None,
        time_max: Optional[dt.datetime] = None,
        sync_token: Optional[str] = None,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Fetch one page of events and reconcile it into the local mirror.

        With ``sync_token`` only the delta since that cursor is requested and
        the time bounds are dropped, since Google rejects the combination.
        """
        params: Dict[str, Any] = {"singleEvents": "true"}
        if sync_token:
            params["syncToken"] = sync_token
        else:
            now = utcnow()
            params["timeMin"] = _rfc3339(time_min or now)
            params["timeMax"] = _rfc3339(time_max or now + dt.timedelta(days=30))
        if page_token:
            params["pageToken"] = page_token

        path = _events_path(calendar_id)
        response = await self._send("GET", path, access_token, params=params)
        # 410 Gone: the sync token is no longer valid
        if response.status_code == 410:
            logger.warning(f"Calendar sync token expired for user {self.user_id}")
            raise SyncTokenExpiredError(self.provider, error_message(response))
        data = self._json_or_raise(response, "GET", path)

        events = data.get("items", [])
        counts = await mirror_service.reconcile_events(self.session, self.user_id, events)
        await self.session.commit()
        return {
            "events": events,
            "next_page_token": data.get("nextPageToken"),
            "next_sync_token": data.get("nextSyncToken"),
            **counts,
        }

    async def fetch_event_changes(
        self,
        access_token: str,
        calendar_id: str = PRIMARY_CALENDAR,
        sync_token: Optional[str] = None,
        past_days: int = 30,
        future_days: int = 90,
    ) -> Dict[str, Any]:
        """Pull every page of an incremental or full sync.

        A full pull is bounded to [now - past_days, now + future_days].
        Raises SyncTokenExpiredError when Google answers 410 Gone.
        """
        now = utcnow()
        time_min = now - dt.timedelta(days=past_days)
        time_max = now + dt.timedelta(days=future_days)

        totals = {"upserted": 0, "deleted": 0, "cancelled": 0, "pages": 0}
        next_sync_token: Optional[str] = None
        page_token: Optional[str] = None
        while True:
            page = await self.list_events(
                access_token,
                calendar_id=calendar_id,
                time_min=time_min,
                time_max=time_max,
                sync_token=sync_token,
                page_token=page_token,
            )
            totals["pages"] += 1
            for key in ("upserted", "deleted", "cancelled"):
                totals[key] += page[key]
            next_sync_token = page.get("next_sync_token") or next_sync_token
            page_token = page.get("next_page_token")
            if not page_token:
                break

        return {**totals, "next_sync_token": next_sync_token, "full_sync": not sync_token}

    async def create_event(
        self, access_token: str, event: Dict[str, Any], calendar_id: str = PRIMARY_CALENDAR
    ) -> Dict[str, Any]:
        if not event:
            raise ValidationError("Event data is required")

        data = await self._request("POST", _events_path(calendar_id), access_token, json=event)
        await self._mirror_event(data)
        logger.info(f"Created calendar event {data.get('id')} for user {self.user_id}")
        return data

    async def update_event(
        self,
        access_token: str,
        event_id: str,
        event: Dict[str, Any],
        calendar_id: str = PRIMARY_CALENDAR,
    ) -> Dict[str, Any]:
        if not event_id or not event:
            raise ValidationError("Event ID and event data are required")

        data = await self._request(
            "PATCH", _events_path(calendar_id, event_id), access_token, json=event
        )
        await self._mirror_event(data)
        return data

    async def delete_event(
        self, access_token: str, event_id: str, calendar_id: str = PRIMARY_CALENDAR
    ) -> Dict[str, Any]:
        if not event_id:
            raise ValidationError("Event ID is required")

        await self._request("DELETE", _events_path(calendar_id, event_id), access_token)
        await mirror_service.delete_event(self.session, self.user_id, event_id)
        await self.session.commit()
        return {"success": True, "event_id": event_id}

    async def _mirror_event(self, event: Dict[str, Any]) -> None:
        if not event.get("id"):
            return
        await mirror_service.upsert_many(
            self.session,
            CalendarEvent,
            [mirror_service.canonical_event(self.user_id, event)],
            ("user_id", "external_event_id"),
        )
        await self.session.commit()
