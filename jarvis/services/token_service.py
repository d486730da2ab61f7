from __future__ import annotations

import asyncio
import datetime as dt
import logging
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis import config
from jarvis.db import as_naive_utc, utcnow
from jarvis.errors import TokenRefreshError
from jarvis.models.integration import IntegrationProvider, UserIntegration

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
SLACK_TOKEN_URL = "https://slack.com/api/oauth.v2.access"

logger = logging.getLogger(__name__)

# One lock per (user_id, provider) so concurrent callers in this process
# perform a single refresh. Separate processes still race (last write wins).
# Entries drop out once no caller holds the lock.
_refresh_locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()


@dataclass
class TokenData:
    access_token: str
    refresh_token: Optional[str] = None


# ---------------------------------------------------------------------------
# Provider refresh handshakes
# ---------------------------------------------------------------------------


class OAuthRefresher:
    """Standard OAuth2 refresh-token grant against ``token_url``."""

    def __init__(self, provider: str, token_url: str, client_id: str, client_secret: str) -> None:
        self.provider = provider
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret

    async def _post(self, data: Dict[str, str], http_client: Optional[httpx.AsyncClient]) -> httpx.Response:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if http_client is not None:
            return await http_client.post(self.token_url, data=data, headers=headers)
        async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS) as client:
            return await client.post(self.token_url, data=data, headers=headers)

    def _parse(self, response: httpx.Response) -> Dict[str, Any]:
        if response.status_code != 200:
            raise TokenRefreshError(self.provider, response.text[:500], response.status_code)
        payload = response.json()
        if not payload.get("access_token"):
            raise TokenRefreshError(self.provider, "response did not include an access token")
        return payload

    async def refresh(
        self, refresh_token: str, http_client: Optional[httpx.AsyncClient] = None
    ) -> Dict[str, Any]:
        """Exchange ``refresh_token`` for a new access token.

        Returns the provider payload (``access_token``, ``expires_in`` and an
        optional rotated ``refresh_token``).
        """
        data = {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
        }
        try:
            response = await self._post(data, http_client)
        except httpx.HTTPError as e:
            raise TokenRefreshError(self.provider, str(e)) from e
        return self._parse(response)


class SlackRefresher(OAuthRefresher):
    """Slack token rotation: HTTP 200 with an ``ok`` flag."""

    def _parse(self, response: httpx.Response) -> Dict[str, Any]:
        if response.status_code != 200:
            raise TokenRefreshError(self.provider, response.text[:500], response.status_code)
        payload = response.json()
        if not payload.get("ok"):
            raise TokenRefreshError(self.provider, payload.get("error", "unknown_error"))
        if not payload.get("access_token"):
            raise TokenRefreshError(self.provider, "response did not include an access token")
        return payload


def default_refreshers() -> Dict[str, OAuthRefresher]:
    """Refreshers for every provider whose OAuth client is configured."""
    refreshers: Dict[str, OAuthRefresher] = {}
    if config.GOOGLE_CLIENT_ID and config.GOOGLE_CLIENT_SECRET:
        refreshers[IntegrationProvider.GOOGLE_CALENDAR.value] = OAuthRefresher(
            IntegrationProvider.GOOGLE_CALENDAR.value,
            GOOGLE_TOKEN_URL,
            config.GOOGLE_CLIENT_ID,
            config.GOOGLE_CLIENT_SECRET,
        )
    if config.SLACK_CLIENT_ID and config.SLACK_CLIENT_SECRET:
        refreshers[IntegrationProvider.SLACK.value] = SlackRefresher(
            IntegrationProvider.SLACK.value,
            SLACK_TOKEN_URL,
            config.SLACK_CLIENT_ID,
            config.SLACK_CLIENT_SECRET,
        )
    return refreshers


# ---------------------------------------------------------------------------
# Token store
# ---------------------------------------------------------------------------


class TokenStore:
    """Per (user, provider) credentials with transparent refresh."""

    def __init__(
        self,
        session: AsyncSession,
        refreshers: Optional[Dict[str, OAuthRefresher]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self.session = session
        self.refreshers = default_refreshers() if refreshers is None else refreshers
        self.http_client = http_client
        self.clock = clock

    async def get_integration(self, user_id: str, provider: str) -> Optional[UserIntegration]:
        result = await self.session.execute(
            select(UserIntegration)
            .where(
                UserIntegration.user_id == user_id,
                UserIntegration.provider == provider,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _is_expired(self, integration: UserIntegration) -> bool:
        expires_at = as_naive_utc(integration.token_expires_at)
        return expires_at is not None and expires_at <= self.clock()

    async def get_valid_token(self, user_id: str, provider: str) -> Optional[TokenData]:
        """Return a usable token for (user, provider), refreshing it if expired.

        Returns None when the provider is not connected. Raises
        TokenRefreshError when the refresh handshake fails; the stored row is
        left as it was.
        """
        integration = await self.get_integration(user_id, provider)
        if integration is None:
            logger.info(f"No {provider} integration found for user {user_id}")
            return None

        if not self._is_expired(integration):
            return TokenData(integration.access_token, integration.refresh_token)

        refresher = self.refreshers.get(provider)
        if not integration.refresh_token or refresher is None:
            logger.warning(
                f"{provider} token for user {user_id} is expired and cannot be refreshed"
            )
            return TokenData(integration.access_token, integration.refresh_token)

        lock = _refresh_locks.setdefault((user_id, provider), asyncio.Lock())
        async with lock:
            # Another caller may have refreshed while we waited
            await self.session.refresh(integration)
            if not self._is_expired(integration):
                return TokenData(integration.access_token, integration.refresh_token)

            logger.info(f"Refreshing expired {provider} token for user {user_id}")
            payload = await refresher.refresh(integration.refresh_token, self.http_client)

            now = self.clock()
            integration.access_token = payload["access_token"]
            integration.refresh_token = payload.get("refresh_token") or integration.refresh_token
            integration.token_expires_at = now + dt.timedelta(
                seconds=int(payload.get("expires_in", 3600))
            )
            integration.updated_at = now
            await self.session.commit()
            logger.info(f"Successfully refreshed {provider} token for user {user_id}")

        return TokenData(integration.access_token, integration.refresh_token)
