from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.db import as_naive_utc, utcnow
from jarvis.errors import ValidationError
from jarvis.models.integration import IntegrationProvider, UserIntegration

logger = logging.getLogger(__name__)


def validate_provider(provider: str) -> str:
    try:
        return IntegrationProvider(provider).value
    except ValueError:
        raise ValidationError(f"Unknown provider '{provider}'") from None


class IntegrationService:
    """Stores and removes the credentials produced by an OAuth connect."""

    def __init__(self, session: AsyncSession, clock: Callable[[], dt.datetime] = utcnow) -> None:
        self.session = session
        self.clock = clock

    async def _get(self, user_id: str, provider: str) -> Optional[UserIntegration]:
        result = await self.session.execute(
            select(UserIntegration).where(
                UserIntegration.user_id == user_id,
                UserIntegration.provider == provider,
            )
        )
        return result.scalar_one_or_none()

    async def connect(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
        token_expires_at: Optional[dt.datetime] = None,
        provider_user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> UserIntegration:
        """Create or replace the (user, provider) credentials.

        Reconnecting overwrites the tokens and drops the calendar sync
        cursor so the next sync starts with a full pull.
        """
        provider = validate_provider(provider)
        if not access_token:
            raise ValidationError("Access token is required")

        now = self.clock()
        if expires_in is not None:
            token_expires_at = now + dt.timedelta(seconds=int(expires_in))

        integration = await self._get(user_id, provider)
        if integration is None:
            integration = UserIntegration(user_id=user_id, provider=provider, created_at=now)
            self.session.add(integration)

        integration.access_token = access_token
        integration.refresh_token = refresh_token
        integration.token_expires_at = as_naive_utc(token_expires_at)
        integration.provider_user_id = provider_user_id
        integration.integration_metadata = metadata or {}
        integration.sync_token = None
        integration.updated_at = now

        await self.session.commit()
        logger.info(f"Connected {provider} for user {user_id}")
        return integration

    async def disconnect(self, user_id: str, provider: str) -> bool:
        provider = validate_provider(provider)
        result = await self.session.execute(
            delete(UserIntegration).where(
                UserIntegration.user_id == user_id,
                UserIntegration.provider == provider,
            )
        )
        await self.session.commit()
        removed = (result.rowcount or 0) > 0
        if removed:
            logger.info(f"Disconnected {provider} for user {user_id}")
        return removed

    async def list_status(self, user_id: str) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(UserIntegration)
            .where(UserIntegration.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        connected = {i.provider: i for i in result.scalars().all()}

        statuses = []
        for provider in IntegrationProvider:
            integration = connected.get(provider.value)
            last_synced = None
            if integration is not None:
                last_synced = integration.last_synced_at or integration.created_at
            statuses.append(
                {
                    "provider": provider.value,
                    "connected": integration is not None,
                    "last_synced_at": last_synced,
                    "token_expires_at": integration.token_expires_at if integration else None,
                }
            )
        return statuses
