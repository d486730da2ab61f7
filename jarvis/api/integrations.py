from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.auth import get_current_user_id
from jarvis.db import get_db
from jarvis.errors import ValidationError
from jarvis.schemas.integration import IntegrationConnect, IntegrationStatus
from jarvis.services.integration_service import IntegrationService

router = APIRouter(prefix="/api/integrations", tags=["Integrations"])


@router.get("", response_model=List[IntegrationStatus])
async def list_integrations(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Connection status for every supported provider."""
    return await IntegrationService(db).list_status(user_id)


@router.post("/{provider}", response_model=IntegrationStatus)
async def connect_integration(
    provider: str,
    request: IntegrationConnect,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Store the tokens returned by a completed OAuth flow."""
    try:
        integration = await IntegrationService(db).connect(
            user_id,
            provider,
            request.access_token,
            refresh_token=request.refresh_token,
            expires_in=request.expires_in,
            token_expires_at=request.token_expires_at,
            provider_user_id=request.provider_user_id,
            metadata=request.metadata,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    return {
        "provider": integration.provider,
        "connected": True,
        "last_synced_at": integration.last_synced_at or integration.created_at,
        "token_expires_at": integration.token_expires_at,
    }


@router.delete("/{provider}")
async def disconnect_integration(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    try:
        removed = await IntegrationService(db).disconnect(user_id, provider)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    if not removed:
        raise HTTPException(status_code=404, detail=f"{provider} is not connected")
    return {"success": True, "provider": provider}
