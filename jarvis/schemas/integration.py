from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class IntegrationConnect(BaseModel):
    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = Field(None, gt=0)
    token_expires_at: Optional[datetime] = None
    provider_user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class IntegrationStatus(BaseModel):
    provider: str
    connected: bool
    last_synced_at: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None
