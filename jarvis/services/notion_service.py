from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from jarvis.errors import ValidationError
from jarvis.models.integration import IntegrationProvider
from jarvis.models.workspace import NotionDatabase
from jarvis.services import mirror_service
from jarvis.services.provider_client import ProviderClient

NOTION_BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

logger = logging.getLogger(__name__)


def database_title(database: Dict[str, Any]) -> str:
    parts = [t.get("plain_text", "") for t in database.get("title") or []]
    title = " ".join(p for p in parts if p).strip()
    return title or "Untitled"


class NotionService(ProviderClient):
    provider = IntegrationProvider.NOTION.value
    base_url = NOTION_BASE_URL

    def _headers(self, access_token: str) -> Dict[str, str]:
        return {**super()._headers(access_token), "Notion-Version": NOTION_VERSION}

    async def _search_all(self, access_token: str, body: Dict[str, Any]) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            payload = dict(body)
            if cursor:
                payload["start_cursor"] = cursor
            data = await self._request("POST", "/search", access_token, json=payload)
            results.extend(data.get("results", []))
            if not data.get("has_more"):
                break
            cursor = data.get("next_cursor")
            if not cursor:
                break
        return results

    async def list_databases(self, access_token: str) -> List[Dict[str, Any]]:
        """List databases shared with the integration and mirror them into ``notion_databases``."""
        databases = await self._search_all(
            access_token, {"filter": {"property": "object", "value": "database"}}
        )
        rows = [
            {
                "user_id": self.user_id,
                "database_id": db["id"],
                "title": database_title(db),
            }
            for db in databases
            if db.get("id")
        ]
        await mirror_service.upsert_many(
            self.session, NotionDatabase, rows, ("user_id", "database_id")
        )
        await self.session.commit()
        return databases

    async def create_page(
        self,
        access_token: str,
        parent: Dict[str, Any],
        properties: Optional[Dict[str, Any]] = None,
        children: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        if not parent:
            raise ValidationError("Parent database or page is required")

        return await self._request(
            "POST",
            "/pages",
            access_token,
            json={"parent": parent, "properties": properties or {}, "children": children or []},
        )

    async def update_page(
        self, access_token: str, page_id: str, properties: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if not page_id:
            raise ValidationError("Page ID is required")

        return await self._request(
            "PATCH", f"/pages/{page_id}", access_token, json={"properties": properties or {}}
        )

    async def search(self, access_token: str, query: str = "") -> List[Dict[str, Any]]:
        data = await self._request(
            "POST",
            "/search",
            access_token,
            json={
                "query": query,
                "sort": {"direction": "descending", "timestamp": "last_edited_time"},
            },
        )
        return data.get("results", [])
