from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.config import HTTP_TIMEOUT_SECONDS
from jarvis.errors import ExternalApiError

logger = logging.getLogger(__name__)


def error_message(response: httpx.Response) -> str:
    """Best-effort extraction of a provider error message."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
        if data.get("message"):
            return str(data["message"])
    return response.reason_phrase or str(data)[:500]


class ProviderClient:
    """Base class for provider adapters.

    Holds the per-user context (``session``, ``user_id``) and sends bearer
    authenticated requests. A shared ``httpx.AsyncClient`` may be injected;
    otherwise a short-lived client is created per call. Adapters never retry.
    """

    provider: str = ""
    base_url: str = ""

    def __init__(
        self,
        session: AsyncSession,
        user_id: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self._http = http_client

    def _headers(self, access_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    async def _send(
        self,
        method: str,
        path: str,
        access_token: str,
        **kwargs: Any,
    ) -> httpx.Response:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        headers = {**self._headers(access_token), **kwargs.pop("headers", {})}
        try:
            if self._http is not None:
                return await self._http.request(method, url, headers=headers, **kwargs)
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
                return await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            # No response at all (timeout, DNS, connection reset); status 0
            logger.error(f"{self.provider} {method} {path} transport error: {e}")
            raise ExternalApiError(self.provider, 0, str(e) or type(e).__name__) from e

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises ExternalApiError for any non-2xx response.
        """
        response = await self._send(method, path, access_token, **kwargs)
        return self._json_or_raise(response, method, path)

    def _json_or_raise(self, response: httpx.Response, method: str, path: str) -> Dict[str, Any]:
        if not response.is_success:
            message = error_message(response)
            logger.error(
                f"{self.provider} {method} {path} failed for user {self.user_id}: "
                f"{response.status_code} {message}"
            )
            raise ExternalApiError(self.provider, response.status_code, message)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()
