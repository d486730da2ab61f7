from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.db import as_naive_utc, utcnow
from jarvis.errors import ValidationError
from jarvis.models.orders import FoodOrder

DEFAULT_VENDOR = "zomato"

logger = logging.getLogger(__name__)

# Simulated catalogue; the vendors expose no public partner API
RESTAURANTS: List[Dict[str, Any]] = [
    {"id": "rest-001", "name": "Tasty Bites", "cuisine": "Indian", "rating": 4.5, "delivery_time": "30-40 min"},
    {"id": "rest-002", "name": "Pizza Paradise", "cuisine": "Italian", "rating": 4.2, "delivery_time": "25-35 min"},
    {"id": "rest-003", "name": "Sushi Express", "cuisine": "Japanese", "rating": 4.7, "delivery_time": "40-50 min"},
    {"id": "rest-004", "name": "Burger Barn", "cuisine": "American", "rating": 4.0, "delivery_time": "20-30 min"},
    {"id": "rest-005", "name": "Chinese Dragon", "cuisine": "Chinese", "rating": 3.9, "delivery_time": "35-45 min"},
]

MENU: List[Dict[str, Any]] = [
    {"id": "item-001", "name": "Butter Chicken", "price": 280, "category": "Main Course", "veg": False},
    {"id": "item-002", "name": "Paneer Tikka", "price": 220, "category": "Starters", "veg": True},
    {"id": "item-003", "name": "Naan", "price": 40, "category": "Bread", "veg": True},
    {"id": "item-004", "name": "Dal Makhani", "price": 180, "category": "Main Course", "veg": True},
    {"id": "item-005", "name": "Gulab Jamun", "price": 100, "category": "Dessert", "veg": True},
]

# (minutes since order, status), checked longest first
STATUS_TIMELINE = [
    (45, "delivered"),
    (30, "out_for_delivery"),
    (15, "preparing"),
    (5, "confirmed"),
]


def order_status_for_age(minutes: float, current: Optional[str]) -> Optional[str]:
    for threshold, status in STATUS_TIMELINE:
        if minutes > threshold:
            return status
    return current


class FoodDeliveryService:
    """Simulated food-delivery provider backed by the ``food_orders`` table."""

    def __init__(self, session: AsyncSession, user_id: str, vendor: str = DEFAULT_VENDOR) -> None:
        self.session = session
        self.user_id = user_id
        self.vendor = vendor or DEFAULT_VENDOR

    def search_restaurants(self, latitude: Any, longitude: Any, query: str = "") -> Dict[str, Any]:
        if not latitude or not longitude:
            raise ValidationError("Location coordinates are required")

        restaurants = RESTAURANTS
        if query:
            needle = query.lower()
            restaurants = [
                r for r in RESTAURANTS
                if needle in r["name"].lower() or needle in r["cuisine"].lower()
            ]
        return {"provider": self.vendor, "restaurants": restaurants}

    def get_menu(self, restaurant_id: str) -> Dict[str, Any]:
        if not restaurant_id:
            raise ValidationError("Restaurant ID is required")
        restaurant = next((r for r in RESTAURANTS if r["id"] == restaurant_id), None)
        return {"provider": self.vendor, "restaurant": restaurant, "menu_items": MENU}

    async def place_order(
        self,
        restaurant_name: str,
        delivery_address: str,
        order_items: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        if not restaurant_name or not delivery_address or not order_items:
            raise ValidationError("Restaurant name, delivery address, and order items are required")

        total = sum(float(item.get("price", 0)) * int(item.get("quantity", 1)) for item in order_items)
        order = FoodOrder(
            user_id=self.user_id,
            provider=self.vendor,
            order_id=f"order-{int(time.time() * 1000)}-{random.randint(0, 999)}",
            restaurant_name=restaurant_name,
            delivery_address=delivery_address,
            order_items=order_items,
            order_total=total,
            status="placed",
        )
        self.session.add(order)
        await self.session.commit()
        logger.info(f"Placed {self.vendor} order {order.order_id} for user {self.user_id}")
        return _order_dict(order)

    async def get_order_status(self, order_id: str) -> Optional[Dict[str, Any]]:
        if not order_id:
            raise ValidationError("Order ID is required")

        result = await self.session.execute(
            select(FoodOrder).where(FoodOrder.user_id == self.user_id, FoodOrder.order_id == order_id)
        )
        order = result.scalar_one_or_none()
        if order is None:
            return None

        age_minutes = (utcnow() - as_naive_utc(order.created_at)).total_seconds() / 60
        status = order_status_for_age(age_minutes, order.status)
        if status != order.status:
            order.status = status
            await self.session.commit()

        data = _order_dict(order)
        if status == "out_for_delivery":
            data["delivery_person"] = {"name": "Sarah Delivery", "estimated_arrival": "10 minutes"}
        return data

    async def order_history(self) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(FoodOrder)
            .where(FoodOrder.user_id == self.user_id)
            .order_by(FoodOrder.created_at.desc())
        )
        return [_order_dict(o) for o in result.scalars().all()]


def _order_dict(order: FoodOrder) -> Dict[str, Any]:
    return {
        "id": str(order.id),
        "order_id": order.order_id,
        "provider": order.provider,
        "restaurant_name": order.restaurant_name,
        "delivery_address": order.delivery_address,
        "order_items": order.order_items,
        "order_total": order.order_total,
        "status": order.status,
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }
