from __future__ import annotations

import os

from dotenv import load_dotenv

# Load env before anything else
load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./jarvis.db")

# OAuth client credentials used for token refresh
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
SLACK_CLIENT_ID = os.getenv("SLACK_CLIENT_ID", "")
SLACK_CLIENT_SECRET = os.getenv("SLACK_CLIENT_SECRET", "")

# Outbound HTTP
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

# Sync queue
QUEUE_BATCH_SIZE = int(os.getenv("QUEUE_BATCH_SIZE", "10"))
QUEUE_MAX_ATTEMPTS = int(os.getenv("QUEUE_MAX_ATTEMPTS", "3"))
QUEUE_RETRY_DELAY_SECONDS = int(os.getenv("QUEUE_RETRY_DELAY_SECONDS", "300"))
QUEUE_BACKOFF_STRATEGY = os.getenv("QUEUE_BACKOFF_STRATEGY", "fixed")  # 'fixed' or 'exponential'
QUEUE_MAX_RETRY_DELAY_SECONDS = int(os.getenv("QUEUE_MAX_RETRY_DELAY_SECONDS", "3600"))
QUEUE_FAIL_FAST = _env_bool("QUEUE_FAIL_FAST", True)
QUEUE_POLL_INTERVAL_SECONDS = int(os.getenv("QUEUE_POLL_INTERVAL_SECONDS", "60"))
QUEUE_POLLER_ENABLED = _env_bool("QUEUE_POLLER_ENABLED", False)

# Calendar full-sync window
CALENDAR_SYNC_PAST_DAYS = int(os.getenv("CALENDAR_SYNC_PAST_DAYS", "30"))
CALENDAR_SYNC_FUTURE_DAYS = int(os.getenv("CALENDAR_SYNC_FUTURE_DAYS", "90"))

# HTTP surface
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
