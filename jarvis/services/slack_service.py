from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from jarvis.errors import ExternalApiError, ValidationError
from jarvis.models.integration import IntegrationProvider
from jarvis.models.workspace import SlackChannel
from jarvis.services import mirror_service
from jarvis.services.provider_client import ProviderClient

SLACK_BASE_URL = "https://slack.com/api"

logger = logging.getLogger(__name__)


class SlackService(ProviderClient):
    """Slack Web API adapter.

    Slack answers most failures with HTTP 200 and ``{"ok": false}``; those are
    raised as ExternalApiError just like non-2xx responses.
    """

    provider = IntegrationProvider.SLACK.value
    base_url = SLACK_BASE_URL

    async def _call(self, method: str, endpoint: str, access_token: str, **kwargs: Any) -> Dict[str, Any]:
        data = await self._request(method, endpoint, access_token, **kwargs)
        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            logger.error(f"Slack {endpoint} failed for user {self.user_id}: {error}")
            raise ExternalApiError(self.provider, 200, error)
        return data

    async def get_workspace_id(self, access_token: str) -> str:
        data = await self._request("GET", "/team.info", access_token)
        if data.get("ok"):
            return data["team"]["id"]
        logger.warning(f"Slack team.info failed for user {self.user_id}: {data.get('error')}")
        return "unknown"

    async def list_channels(self, access_token: str) -> List[Dict[str, Any]]:
        """List conversations and mirror the non-archived ones into ``slack_channels``."""
        channels: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"types": "public_channel,private_channel", "limit": 200}
            if cursor:
                params["cursor"] = cursor
            data = await self._call("GET", "/conversations.list", access_token, params=params)
            channels.extend(data.get("channels", []))
            cursor = (data.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break

        workspace_id = await self.get_workspace_id(access_token)
        rows = [
            {
                "user_id": self.user_id,
                "workspace_id": workspace_id,
                "channel_id": channel["id"],
                "channel_name": channel.get("name") or channel["id"],
                "is_private": bool(channel.get("is_private", False)),
            }
            for channel in channels
            if not channel.get("is_archived")
        ]
        await mirror_service.upsert_many(
            self.session, SlackChannel, rows, ("user_id", "workspace_id", "channel_id")
        )
        await self.session.commit()
        return channels

    async def post_message(
        self,
        access_token: str,
        channel: str,
        text: Optional[str] = None,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        if not channel or (not text and not blocks):
            raise ValidationError("Channel and message content (text or blocks) are required")

        body: Dict[str, Any] = {"channel": channel, "text": text or ""}
        if blocks:
            body["blocks"] = blocks
        return await self._call("POST", "/chat.postMessage", access_token, json=body)

    async def create_reminder(
        self, access_token: str, text: str, time: Any, user: Optional[str] = None
    ) -> Dict[str, Any]:
        if not text or not time:
            raise ValidationError("Reminder text and time are required")

        body: Dict[str, Any] = {"text": text, "time": time}
        if user:
            body["user"] = user
        return await self._call("POST", "/reminders.add", access_token, json=body)
