from __future__ import annotations

from typing import Optional

# User-facing states the UI maps errors onto
NOT_CONNECTED = "not_connected"
SYNC_FAILED_WILL_RETRY = "sync_failed_will_retry"
RECONNECT_REQUIRED = "reconnect_required"


class JarvisError(Exception):
    """Base class for sync core errors.

    ``retryable`` tells the queue processor whether another attempt can
    succeed; ``user_state`` is what the dashboard shows for the failure.
    """

    retryable: bool = True
    user_state: str = SYNC_FAILED_WILL_RETRY

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(JarvisError):
    """Malformed enqueue or operation request. Rejected before any side effect."""

    retryable = False


class UnsupportedOperationError(JarvisError):
    """No handler is registered for an (integration_type, operation) pair."""

    retryable = False

    def __init__(self, integration_type: str, operation: str) -> None:
        super().__init__(f"Unsupported operation '{operation}' for integration '{integration_type}'")
        self.integration_type = integration_type
        self.operation = operation


class IntegrationMissingError(JarvisError):
    """No stored credentials for (user, provider)."""

    retryable = False
    user_state = NOT_CONNECTED

    def __init__(self, provider: str, user_id: Optional[str] = None) -> None:
        super().__init__(f"{provider} not connected")
        self.provider = provider
        self.user_id = user_id


class TokenRefreshError(JarvisError):
    """The provider refused or failed the refresh-token handshake."""

    retryable = False
    user_state = RECONNECT_REQUIRED

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"Failed to refresh {provider} token: {message}")
        self.provider = provider
        self.status_code = status_code


class ExternalApiError(JarvisError):
    """Non-2xx response (or an ``ok: false`` envelope) from a provider API."""

    def __init__(self, provider: str, status_code: int, message: str) -> None:
        super().__init__(f"{provider} API error {status_code}: {message}")
        self.provider = provider
        self.status_code = status_code
        self.provider_message = message


class SyncTokenExpiredError(ExternalApiError):
    """Incremental sync cursor rejected; recovered by a full pull."""

    def __init__(self, provider: str, message: str = "sync token expired") -> None:
        super().__init__(provider, 410, message)


class DatabaseError(JarvisError):
    """Local store read or write failure."""
