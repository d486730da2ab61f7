from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis import config
from jarvis.db import utcnow
from jarvis.errors import IntegrationMissingError, JarvisError, SyncTokenExpiredError
from jarvis.models.integration import IntegrationProvider, UserIntegration
from jarvis.services.calendar_service import PRIMARY_CALENDAR, GoogleCalendarService
from jarvis.services.notion_service import NotionService
from jarvis.services.slack_service import SlackService
from jarvis.services.token_service import TokenData, TokenStore

logger = logging.getLogger(__name__)

Reconciler = Callable[[str, TokenData], Awaitable[Dict[str, Any]]]


class ReconciliationService:
    """Pull each connected provider's current state into the local mirrors."""

    def __init__(
        self,
        session: AsyncSession,
        token_store: Optional[TokenStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.session = session
        self.http_client = http_client
        self.clock = clock
        self.token_store = token_store or TokenStore(session, http_client=http_client, clock=clock)
        self.reconcilers: Dict[str, Reconciler] = {
            IntegrationProvider.GOOGLE_CALENDAR.value: self.sync_calendar,
            IntegrationProvider.SLACK.value: self.sync_slack,
            IntegrationProvider.NOTION.value: self.sync_notion,
        }

    async def _connected_providers(self, user_id: str) -> List[str]:
        result = await self.session.execute(
            select(UserIntegration.provider)
            .where(UserIntegration.user_id == user_id)
            .order_by(UserIntegration.provider)
        )
        return list(result.scalars().all())

    async def sync_all(self, user_id: str) -> Dict[str, Any]:
        """Reconcile every provider the user has connected.

        Each provider is isolated: a failure is reported as
        ``{"error": message}`` under its key and the others still run.
        Providers with nothing to pull (food, rides) are reported as skipped.
        """
        results: Dict[str, Any] = {}
        for provider in await self._connected_providers(user_id):
            reconciler = self.reconcilers.get(provider)
            if reconciler is None:
                results[provider] = {"skipped": True}
                continue

            try:
                token = await self.token_store.get_valid_token(user_id, provider)
                if token is None:
                    raise IntegrationMissingError(provider, user_id)
                results[provider] = await reconciler(user_id, token)
            except Exception as e:
                logger.exception(f"Sync failed for {provider}, user {user_id}")
                await self.session.rollback()
                message = e.message if isinstance(e, JarvisError) else str(e)
                results[provider] = {"error": message}

        logger.info(f"sync_all finished for user {user_id}: {sorted(results)}")
        return results

    async def _save_sync_state(self, user_id: str, provider: str, **values: Any) -> None:
        values["updated_at"] = self.clock()
        await self.session.execute(
            update(UserIntegration)
            .where(UserIntegration.user_id == user_id, UserIntegration.provider == provider)
            .values(**values)
        )
        await self.session.commit()

    async def sync_calendar(self, user_id: str, token: TokenData) -> Dict[str, Any]:
        """Incremental pull when a sync token is stored, full windowed pull otherwise.

        An expired sync token is cleared and replaced by a full pull in the
        same call.
        """
        provider = IntegrationProvider.GOOGLE_CALENDAR.value
        integration = await self.token_store.get_integration(user_id, provider)
        sync_token = integration.sync_token if integration else None

        calendar = GoogleCalendarService(self.session, user_id, self.http_client)
        calendars = await calendar.list_calendars(token.access_token)

        window = {
            "past_days": config.CALENDAR_SYNC_PAST_DAYS,
            "future_days": config.CALENDAR_SYNC_FUTURE_DAYS,
        }
        sync_token_reset = False
        try:
            result = await calendar.fetch_event_changes(
                token.access_token, PRIMARY_CALENDAR, sync_token=sync_token, **window
            )
        except SyncTokenExpiredError:
            logger.warning(f"Clearing expired calendar sync token for user {user_id}")
            await self._save_sync_state(user_id, provider, sync_token=None)
            sync_token_reset = True
            result = await calendar.fetch_event_changes(
                token.access_token, PRIMARY_CALENDAR, sync_token=None, **window
            )

        values: Dict[str, Any] = {"last_synced_at": self.clock()}
        if result["next_sync_token"]:
            values["sync_token"] = result["next_sync_token"]
        await self._save_sync_state(user_id, provider, **values)

        logger.info(
            f"Calendar sync for user {user_id}: {result['upserted']} upserted, "
            f"{result['deleted']} deleted ({'full' if result['full_sync'] else 'incremental'})"
        )
        return {
            "calendars": len(calendars),
            "upserted": result["upserted"],
            "deleted": result["deleted"],
            "cancelled": result["cancelled"],
            "pages": result["pages"],
            "full_sync": result["full_sync"],
            "sync_token_reset": sync_token_reset,
        }

    async def sync_slack(self, user_id: str, token: TokenData) -> Dict[str, Any]:
        slack = SlackService(self.session, user_id, self.http_client)
        channels = await slack.list_channels(token.access_token)
        await self._save_sync_state(
            user_id, IntegrationProvider.SLACK.value, last_synced_at=self.clock()
        )
        return {"channels": len(channels)}

    async def sync_notion(self, user_id: str, token: TokenData) -> Dict[str, Any]:
        notion = NotionService(self.session, user_id, self.http_client)
        databases = await notion.list_databases(token.access_token)
        await self._save_sync_state(
            user_id, IntegrationProvider.NOTION.value, last_synced_at=self.clock()
        )
        return {"databases": len(databases)}
