from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.auth import get_current_user_id
from jarvis.db import get_db
from jarvis.errors import ValidationError
from jarvis.models.integration import IntegrationProvider
from jarvis.services.ride_service import DEFAULT_VENDOR, RideService
from jarvis.services.token_service import TokenStore

router = APIRouter(prefix="/api/rides", tags=["Rides"])


async def _require_connected(db: AsyncSession, user_id: str) -> None:
    token = await TokenStore(db).get_valid_token(user_id, IntegrationProvider.RIDE_SERVICE.value)
    if token is None:
        raise HTTPException(status_code=400, detail="ride_service not connected")


@router.get("/estimate")
async def estimate(
    pickup: str = Query(..., description="Pickup location"),
    dropoff: str = Query(..., description="Dropoff location"),
    provider: str = Query(DEFAULT_VENDOR),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Fare and pickup-time estimate. Bookings go through the sync queue."""
    await _require_connected(db, user_id)
    try:
        return RideService(db, user_id, provider).estimate(pickup, dropoff)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.get("/bookings")
async def ride_history(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[Dict[str, Any]]:
    await _require_connected(db, user_id)
    return await RideService(db, user_id).ride_history()


@router.get("/bookings/{booking_id}")
async def get_ride_status(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    await _require_connected(db, user_id)
    booking = await RideService(db, user_id).get_ride_status(booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail=f"Booking {booking_id} not found")
    return booking
