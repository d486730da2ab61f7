from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.db import as_naive_utc, utcnow
from jarvis.errors import ValidationError
from jarvis.models.orders import RideBooking

DEFAULT_VENDOR = "uber"
FINAL_STATUSES = {"completed", "cancelled"}

STATUS_TIMELINE = [
    (30, "completed"),
    (15, "in_progress"),
    (5, "driver_arrived"),
    (2, "driver_assigned"),
]

logger = logging.getLogger(__name__)


class RideService:
    """Simulated ride-booking provider backed by the ``ride_bookings`` table."""

    def __init__(self, session: AsyncSession, user_id: str, vendor: str = DEFAULT_VENDOR) -> None:
        self.session = session
        self.user_id = user_id
        self.vendor = vendor or DEFAULT_VENDOR

    def estimate(self, pickup_location: str, dropoff_location: str) -> Dict[str, Any]:
        if not pickup_location or not dropoff_location:
            raise ValidationError("Pickup and dropoff locations are required")

        return {
            "provider": self.vendor,
            "estimated_fare": random.randint(100, 600),
            "estimated_time": random.randint(5, 20),
            "currency": "INR",
            "pickup_location": pickup_location,
            "dropoff_location": dropoff_location,
        }

    async def book_ride(
        self,
        pickup_location: str,
        dropoff_location: str,
        pickup_time: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not pickup_location or not dropoff_location:
            raise ValidationError("Pickup and dropoff locations are required")

        booking = RideBooking(
            user_id=self.user_id,
            provider=self.vendor,
            booking_id=f"booking-{int(time.time() * 1000)}-{random.randint(0, 999)}",
            pickup_location=pickup_location,
            dropoff_location=dropoff_location,
            pickup_time=pickup_time or utcnow().isoformat(),
            fare=float(random.randint(100, 600)),
            status="confirmed",
        )
        self.session.add(booking)
        await self.session.commit()
        logger.info(f"Booked {self.vendor} ride {booking.booking_id} for user {self.user_id}")
        return _booking_dict(booking)

    async def _get_booking(self, booking_id: str) -> Optional[RideBooking]:
        if not booking_id:
            raise ValidationError("Booking ID is required")
        result = await self.session.execute(
            select(RideBooking).where(
                RideBooking.user_id == self.user_id, RideBooking.booking_id == booking_id
            )
        )
        return result.scalar_one_or_none()

    async def get_ride_status(self, booking_id: str) -> Optional[Dict[str, Any]]:
        booking = await self._get_booking(booking_id)
        if booking is None:
            return None

        if booking.status not in FINAL_STATUSES:
            age_minutes = (utcnow() - as_naive_utc(booking.created_at)).total_seconds() / 60
            status = next((s for t, s in STATUS_TIMELINE if age_minutes > t), booking.status)
            if status != booking.status:
                booking.status = status
                await self.session.commit()

        data = _booking_dict(booking)
        if booking.status in {"driver_assigned", "driver_arrived", "in_progress"}:
            data["driver"] = {"name": "John Driver", "rating": 4.7, "car": "Toyota Camry"}
        return data

    async def cancel_ride(self, booking_id: str) -> Dict[str, Any]:
        booking = await self._get_booking(booking_id)
        if booking is None:
            raise ValidationError(f"Booking {booking_id} not found")
        if booking.status in FINAL_STATUSES:
            raise ValidationError(f"Ride cannot be cancelled as it is already {booking.status}")

        booking.status = "cancelled"
        await self.session.commit()
        return {"success": True, "booking_id": booking_id, "status": "cancelled"}

    async def ride_history(self) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(RideBooking)
            .where(RideBooking.user_id == self.user_id)
            .order_by(RideBooking.created_at.desc())
        )
        return [_booking_dict(b) for b in result.scalars().all()]


def _booking_dict(booking: RideBooking) -> Dict[str, Any]:
    return {
        "id": str(booking.id),
        "booking_id": booking.booking_id,
        "provider": booking.provider,
        "pickup_location": booking.pickup_location,
        "dropoff_location": booking.dropoff_location,
        "pickup_time": booking.pickup_time,
        "fare": booking.fare,
        "status": booking.status,
    }
