from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.auth import get_current_user_id
from jarvis.db import get_db
from jarvis.errors import ValidationError
from jarvis.models.integration import IntegrationProvider
from jarvis.services.food_delivery_service import DEFAULT_VENDOR, FoodDeliveryService
from jarvis.services.token_service import TokenStore

router = APIRouter(prefix="/api/food-delivery", tags=["Food Delivery"])

# Orders are placed through the sync queue (food_delivery.place_order); these
# routes are the read side.


async def _require_connected(db: AsyncSession, user_id: str) -> None:
    token = await TokenStore(db).get_valid_token(user_id, IntegrationProvider.FOOD_DELIVERY.value)
    if token is None:
        raise HTTPException(status_code=400, detail="food_delivery not connected")


@router.get("/restaurants")
async def search_restaurants(
    lat: str = Query(..., description="Delivery latitude"),
    lng: str = Query(..., description="Delivery longitude"),
    query: str = Query("", description="Name or cuisine filter"),
    provider: str = Query(DEFAULT_VENDOR),
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, Any]:
    """Restaurant search. Does not require a connected account."""
    try:
        return FoodDeliveryService(None, user_id, provider).search_restaurants(lat, lng, query)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.get("/restaurants/{restaurant_id}/menu")
async def get_menu(
    restaurant_id: str,
    provider: str = Query(DEFAULT_VENDOR),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    await _require_connected(db, user_id)
    return FoodDeliveryService(db, user_id, provider).get_menu(restaurant_id)


@router.get("/orders")
async def order_history(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[Dict[str, Any]]:
    await _require_connected(db, user_id)
    return await FoodDeliveryService(db, user_id).order_history()


@router.get("/orders/{order_id}")
async def get_order_status(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Current order status, advanced along the delivery timeline."""
    await _require_connected(db, user_id)
    order = await FoodDeliveryService(db, user_id).get_order_status(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order
