from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Float, String, Text, Uuid

from jarvis.db import Base, utcnow


class FoodOrder(Base):
    __tablename__ = "food_orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    provider = Column(String(50), nullable=False)  # 'zomato', 'swiggy'
    order_id = Column(String(64), nullable=True, index=True)
    restaurant_name = Column(String(255), nullable=False)
    delivery_address = Column(Text, nullable=False)
    order_items = Column(JSON, nullable=False)
    order_total = Column(Float, nullable=False)
    status = Column(String(30), nullable=True, default="placed")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class RideBooking(Base):
    __tablename__ = "ride_bookings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    provider = Column(String(50), nullable=False)  # 'uber', 'ola'
    booking_id = Column(String(64), nullable=True, index=True)
    pickup_location = Column(Text, nullable=False)
    dropoff_location = Column(Text, nullable=False)
    pickup_time = Column(String(64), nullable=False)
    fare = Column(Float, nullable=True)
    status = Column(String(30), nullable=True, default="confirmed")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
