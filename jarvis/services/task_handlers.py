from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.errors import UnsupportedOperationError, ValidationError
from jarvis.models.integration import IntegrationProvider
from jarvis.services.calendar_service import PRIMARY_CALENDAR, GoogleCalendarService
from jarvis.services.food_delivery_service import FoodDeliveryService
from jarvis.services.notion_service import NotionService
from jarvis.services.ride_service import RideService
from jarvis.services.slack_service import SlackService
from jarvis.services.token_service import TokenData


class TaskOperation(str, Enum):
    CREATE_EVENT = "create_event"
    UPDATE_EVENT = "update_event"
    DELETE_EVENT = "delete_event"
    SEND_MESSAGE = "send_message"
    CREATE_REMINDER = "create_reminder"
    CREATE_PAGE = "create_page"
    UPDATE_PAGE = "update_page"
    PLACE_ORDER = "place_order"
    BOOK_RIDE = "book_ride"
    CANCEL_RIDE = "cancel_ride"


@dataclass
class TaskContext:
    session: AsyncSession
    user_id: str
    token: TokenData
    http_client: Optional[httpx.AsyncClient] = None


Handler = Callable[[TaskContext, Dict[str, Any]], Awaitable[Dict[str, Any]]]

HANDLERS: Dict[Tuple[IntegrationProvider, TaskOperation], Handler] = {}


def handles(provider: IntegrationProvider, operation: TaskOperation):
    def register(func: Handler) -> Handler:
        HANDLERS[(provider, operation)] = func
        return func

    return register


def resolve(integration_type: str, operation: str) -> Handler:
    """Look up the handler for a task, or raise UnsupportedOperationError."""
    try:
        key = (IntegrationProvider(integration_type), TaskOperation(operation))
    except ValueError:
        raise UnsupportedOperationError(integration_type, operation) from None
    handler = HANDLERS.get(key)
    if handler is None:
        raise UnsupportedOperationError(integration_type, operation)
    return handler


def is_supported(integration_type: str, operation: str) -> bool:
    try:
        resolve(integration_type, operation)
    except UnsupportedOperationError:
        return False
    return True


def _field(payload: Dict[str, Any], *names: str, required: bool = False) -> Any:
    """First present key among ``names`` (accepts camelCase aliases)."""
    for name in names:
        if payload.get(name) is not None:
            return payload[name]
    if required:
        raise ValidationError(f"Payload field '{names[0]}' is required")
    return None


# Google Calendar

def _calendar(ctx: TaskContext) -> GoogleCalendarService:
    return GoogleCalendarService(ctx.session, ctx.user_id, ctx.http_client)


@handles(IntegrationProvider.GOOGLE_CALENDAR, TaskOperation.CREATE_EVENT)
async def create_event(ctx: TaskContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    return await _calendar(ctx).create_event(
        ctx.token.access_token,
        _field(payload, "event", required=True),
        calendar_id=_field(payload, "calendar_id", "calendarId") or PRIMARY_CALENDAR,
    )


@handles(IntegrationProvider.GOOGLE_CALENDAR, TaskOperation.UPDATE_EVENT)
async def update_event(ctx: TaskContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    return await _calendar(ctx).update_event(
        ctx.token.access_token,
        _field(payload, "event_id", "eventId", required=True),
        _field(payload, "event", required=True),
        calendar_id=_field(payload, "calendar_id", "calendarId") or PRIMARY_CALENDAR,
    )


@handles(IntegrationProvider.GOOGLE_CALENDAR, TaskOperation.DELETE_EVENT)
async def delete_event(ctx: TaskContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    return await _calendar(ctx).delete_event(
        ctx.token.access_token,
        _field(payload, "event_id", "eventId", required=True),
        calendar_id=_field(payload, "calendar_id", "calendarId") or PRIMARY_CALENDAR,
    )


# Slack

@handles(IntegrationProvider.SLACK, TaskOperation.SEND_MESSAGE)
async def send_message(ctx: TaskContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    slack = SlackService(ctx.session, ctx.user_id, ctx.http_client)
    return await slack.post_message(
        ctx.token.access_token,
        _field(payload, "channel", required=True),
        text=_field(payload, "text"),
        blocks=_field(payload, "blocks"),
    )


@handles(IntegrationProvider.SLACK, TaskOperation.CREATE_REMINDER)
async def create_reminder(ctx: TaskContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    slack = SlackService(ctx.session, ctx.user_id, ctx.http_client)
    return await slack.create_reminder(
        ctx.token.access_token,
        _field(payload, "text", required=True),
        _field(payload, "time", required=True),
        user=_field(payload, "user"),
    )


# Notion

@handles(IntegrationProvider.NOTION, TaskOperation.CREATE_PAGE)
async def create_page(ctx: TaskContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    notion = NotionService(ctx.session, ctx.user_id, ctx.http_client)
    return await notion.create_page(
        ctx.token.access_token,
        _field(payload, "parent", required=True),
        properties=_field(payload, "properties"),
        children=_field(payload, "children"),
    )


@handles(IntegrationProvider.NOTION, TaskOperation.UPDATE_PAGE)
async def update_page(ctx: TaskContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    notion = NotionService(ctx.session, ctx.user_id, ctx.http_client)
    return await notion.update_page(
        ctx.token.access_token,
        _field(payload, "page_id", "pageId", required=True),
        properties=_field(payload, "properties"),
    )


# Simulated providers

@handles(IntegrationProvider.FOOD_DELIVERY, TaskOperation.PLACE_ORDER)
async def place_order(ctx: TaskContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    food = FoodDeliveryService(ctx.session, ctx.user_id, vendor=_field(payload, "provider"))
    return await food.place_order(
        _field(payload, "restaurant_name", required=True),
        _field(payload, "delivery_address", required=True),
        _field(payload, "order_items", required=True),
    )


@handles(IntegrationProvider.RIDE_SERVICE, TaskOperation.BOOK_RIDE)
async def book_ride(ctx: TaskContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    rides = RideService(ctx.session, ctx.user_id, vendor=_field(payload, "provider"))
    return await rides.book_ride(
        _field(payload, "pickup_location", required=True),
        _field(payload, "dropoff_location", required=True),
        pickup_time=_field(payload, "pickup_time"),
    )


@handles(IntegrationProvider.RIDE_SERVICE, TaskOperation.CANCEL_RIDE)
async def cancel_ride(ctx: TaskContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    rides = RideService(ctx.session, ctx.user_id, vendor=_field(payload, "provider"))
    return await rides.cancel_ride(_field(payload, "booking_id", required=True))
