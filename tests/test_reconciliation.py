from __future__ import annotations

import datetime as dt

import httpx
import pytest
from sqlalchemy import select

from jarvis.errors import TokenRefreshError
from jarvis.models.calendar import CalendarEvent, CalendarMetadata
from jarvis.models.integration import UserIntegration
from jarvis.models.workspace import NotionDatabase, SlackChannel
from jarvis.services.reconciliation_service import ReconciliationService
from jarvis.services.token_service import TokenStore

from conftest import CountingRefresher

GOOGLE = "google_calendar"


def event(event_id, summary="Standup", status="confirmed"):
    return {
        "id": event_id,
        "summary": summary,
        "status": status,
        "start": {"dateTime": "2026-03-03T09:00:00Z"},
        "end": {"dateTime": "2026-03-03T09:15:00Z"},
    }


class FakeGoogle:
    """In-process Google Calendar: serves calendarList and events pages."""

    def __init__(self, events, next_sync_token="sync-1", expired_tokens=()):
        self.events = events
        self.next_sync_token = next_sync_token
        self.expired_tokens = set(expired_tokens)
        self.event_requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/users/me/calendarList"):
            return httpx.Response(
                200,
                json={"items": [{"id": "primary-id", "summary": "Me", "primary": True}]},
            )
        if path.endswith("/calendars/primary/events"):
            params = dict(request.url.params)
            self.event_requests.append(params)
            if params.get("syncToken") in self.expired_tokens:
                return httpx.Response(
                    410, json={"error": {"code": 410, "message": "Sync token is no longer valid"}}
                )
            return httpx.Response(
                200, json={"items": self.events, "nextSyncToken": self.next_sync_token}
            )
        return httpx.Response(404, json={"error": {"message": f"unexpected {path}"}})


async def _rows(session, model, user_id):
    result = await session.execute(
        select(model).where(model.user_id == user_id).execution_options(populate_existing=True)
    )
    return result.scalars().all()


async def _integration(session, user_id, provider=GOOGLE) -> UserIntegration:
    result = await session.execute(
        select(UserIntegration)
        .where(UserIntegration.user_id == user_id, UserIntegration.provider == provider)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


def service(session, clock, http_client, refreshers=None):
    store = TokenStore(session, refreshers=refreshers or {}, http_client=http_client, clock=clock)
    return ReconciliationService(session, token_store=store, http_client=http_client, clock=clock)


class TestCalendarReconciliation:
    """Google Calendar pulls into calendar_events."""

    @pytest.mark.asyncio
    async def test_full_pull_stores_events_and_sync_token(
        self, db_session, user_id, clock, connect, mock_http
    ):
        await connect(user_id, GOOGLE)
        google = FakeGoogle([event("e1"), event("e2", summary=None)])

        result = await service(db_session, clock, mock_http(google)).sync_all(user_id)

        assert result[GOOGLE]["full_sync"] is True
        assert result[GOOGLE]["upserted"] == 2
        params = google.event_requests[0]
        assert "timeMin" in params and "timeMax" in params
        assert "syncToken" not in params

        events = {e.external_event_id: e for e in await _rows(db_session, CalendarEvent, user_id)}
        assert set(events) == {"e1", "e2"}
        assert events["e2"].title == "No Title"

        calendars = await _rows(db_session, CalendarMetadata, user_id)
        assert [c.calendar_id for c in calendars] == ["primary-id"]
        assert calendars[0].raw["summary"] == "Me"

        integration = await _integration(db_session, user_id)
        assert integration.sync_token == "sync-1"
        assert integration.last_synced_at == clock.now

    @pytest.mark.asyncio
    async def test_second_run_is_incremental_and_idempotent(
        self, db_session, user_id, clock, connect, mock_http
    ):
        await connect(user_id, GOOGLE)
        google = FakeGoogle([event("e1"), event("e2")])
        sync = service(db_session, clock, mock_http(google))

        await sync.sync_all(user_id)
        second = await sync.sync_all(user_id)

        assert second[GOOGLE]["full_sync"] is False
        assert google.event_requests[1]["syncToken"] == "sync-1"
        assert "timeMin" not in google.event_requests[1]
        rows = await _rows(db_session, CalendarEvent, user_id)
        assert sorted(r.external_event_id for r in rows) == ["e1", "e2"]

    @pytest.mark.asyncio
    async def test_cancelled_event_is_deleted(self, db_session, user_id, clock, connect, mock_http):
        await connect(user_id, GOOGLE)
        google = FakeGoogle([event("e1"), event("e2")])
        sync = service(db_session, clock, mock_http(google))
        await sync.sync_all(user_id)

        google.events = [event("e1", status="cancelled")]
        result = await sync.sync_all(user_id)

        assert result[GOOGLE]["deleted"] == 1
        rows = await _rows(db_session, CalendarEvent, user_id)
        assert [r.external_event_id for r in rows] == ["e2"]

    @pytest.mark.asyncio
    async def test_expired_sync_token_falls_back_to_full_pull(
        self, db_session, user_id, clock, connect, mock_http
    ):
        integration = await connect(user_id, GOOGLE)
        integration.sync_token = "stale-token"
        await db_session.commit()
        google = FakeGoogle([event("e1")], next_sync_token="fresh-token", expired_tokens={"stale-token"})

        result = await service(db_session, clock, mock_http(google)).sync_all(user_id)

        assert "error" not in result[GOOGLE]
        assert result[GOOGLE]["sync_token_reset"] is True
        assert result[GOOGLE]["full_sync"] is True
        assert google.event_requests[0]["syncToken"] == "stale-token"
        assert "syncToken" not in google.event_requests[1]
        assert "timeMin" in google.event_requests[1]

        integration = await _integration(db_session, user_id)
        assert integration.sync_token == "fresh-token"
        assert [r.external_event_id for r in await _rows(db_session, CalendarEvent, user_id)] == ["e1"]


class TestSyncAllIsolation:
    """One provider failing never stops the others."""

    @pytest.mark.asyncio
    async def test_failed_provider_is_reported_and_others_continue(
        self, db_session, user_id, clock, connect, mock_http
    ):
        await connect(user_id, GOOGLE)
        await connect(user_id, "slack")
        await connect(user_id, "notion")
        await connect(user_id, "ride_service")
        google = FakeGoogle([event("e1")])

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "slack.com":
                return httpx.Response(500, text="upstream exploded")
            if request.url.host == "api.notion.com":
                assert request.headers["Notion-Version"] == "2022-06-28"
                return httpx.Response(
                    200,
                    json={
                        "results": [
                            {"object": "database", "id": "db-1", "title": [{"plain_text": "Tasks"}]}
                        ],
                        "has_more": False,
                    },
                )
            return google(request)

        result = await service(db_session, clock, mock_http(handler)).sync_all(user_id)

        assert "500" in result["slack"]["error"]
        assert result[GOOGLE]["upserted"] == 1
        assert result["notion"] == {"databases": 1}
        assert result["ride_service"] == {"skipped": True}
        databases = await _rows(db_session, NotionDatabase, user_id)
        assert [(d.database_id, d.title) for d in databases] == [("db-1", "Tasks")]

    @pytest.mark.asyncio
    async def test_refresh_failure_is_isolated(self, db_session, user_id, clock, connect, mock_http):
        await connect(
            user_id,
            GOOGLE,
            refresh_token="revoked",
            token_expires_at=clock.now - dt.timedelta(minutes=1),
        )
        await connect(user_id, "slack")

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/conversations.list"):
                return httpx.Response(
                    200,
                    json={"ok": True, "channels": [{"id": "C1", "name": "general"}]},
                )
            if request.url.path.endswith("/team.info"):
                return httpx.Response(200, json={"ok": True, "team": {"id": "T1"}})
            return httpx.Response(404)

        refresher = CountingRefresher(error=TokenRefreshError(GOOGLE, "invalid_grant", 400))
        result = await service(
            db_session, clock, mock_http(handler), refreshers={GOOGLE: refresher}
        ).sync_all(user_id)

        assert "invalid_grant" in result[GOOGLE]["error"]
        assert result["slack"] == {"channels": 1}
        channels = await _rows(db_session, SlackChannel, user_id)
        assert [(c.workspace_id, c.channel_id) for c in channels] == [("T1", "C1")]

    @pytest.mark.asyncio
    async def test_no_integrations(self, db_session, user_id, clock, mock_http):
        result = await service(
            db_session, clock, mock_http(lambda r: httpx.Response(500))
        ).sync_all(user_id)

        assert result == {}
