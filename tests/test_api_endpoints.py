from __future__ import annotations

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from jarvis.db import get_db
from jarvis.main import app
from jarvis.services.food_delivery_service import FoodDeliveryService
from jarvis.services.ride_service import RideService
from jarvis.services.sync_queue_service import SyncQueue

from conftest import make_jwt


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[httpx.AsyncClient, None]:
    """API client bound to the per-test database."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth(user_id):
    return {"Authorization": f"Bearer {make_jwt(user_id)}"}


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_database_health(self, client):
        response = await client.get("/health/db")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestSyncEndpoints:
    @pytest.mark.asyncio
    async def test_requires_bearer_token(self, client):
        response = await client.post(
            "/api/sync/add-task",
            json={"integration_type": "slack", "operation": "send_message", "payload": {"text": "hi"}},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_token_rejected(self, client):
        response = await client.get("/api/sync/tasks", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_add_task_and_read_back(self, client, auth, user_id):
        response = await client.post(
            "/api/sync/add-task",
            headers=auth,
            json={
                "integration_type": "slack",
                "operation": "send_message",
                "payload": {"channel": "C1", "text": "hi"},
                "priority": 2,
            },
        )

        assert response.status_code == 201
        task = response.json()
        assert task["user_id"] == user_id
        assert task["status"] == "pending"
        assert task["priority"] == 2
        assert task["attempts"] == 0

        listed = await client.get("/api/sync/tasks", headers=auth)
        assert [t["id"] for t in listed.json()] == [task["id"]]

        fetched = await client.get(f"/api/sync/tasks/{task['id']}", headers=auth)
        assert fetched.status_code == 200
        assert fetched.json()["payload"] == {"channel": "C1", "text": "hi"}

    @pytest.mark.asyncio
    async def test_empty_payload_object_is_queued(self, client, auth):
        response = await client.post(
            "/api/sync/add-task",
            headers=auth,
            json={"integration_type": "slack", "operation": "send_message", "payload": {}},
        )

        assert response.status_code == 201
        assert response.json()["payload"] == {}

    @pytest.mark.asyncio
    async def test_blank_operation_is_bad_request(self, client, auth):
        response = await client.post(
            "/api/sync/add-task",
            headers=auth,
            json={"integration_type": "slack", "operation": "", "payload": {"text": "hi"}},
        )

        assert response.status_code == 400
        assert "operation" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_missing_fields_are_unprocessable(self, client, auth):
        response = await client.post("/api/sync/add-task", headers=auth, json={"operation": "x"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_other_users_task_is_not_found(self, client, auth):
        created = await client.post(
            "/api/sync/add-task",
            headers=auth,
            json={"integration_type": "slack", "operation": "send_message", "payload": {"text": "hi"}},
        )
        other = {"Authorization": f"Bearer {make_jwt('someone-else')}"}

        response = await client.get(f"/api/sync/tasks/{created.json()['id']}", headers=other)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_process_queue_records_failure(self, client, auth):
        created = await client.post(
            "/api/sync/add-task",
            headers=auth,
            json={"integration_type": "slack", "operation": "send_message", "payload": {"text": "hi"}},
        )

        response = await client.post("/api/sync/process-queue", headers=auth)

        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 1
        assert body["results"][0]["task_id"] == created.json()["id"]
        assert body["results"][0]["success"] is False
        assert body["results"][0]["error"] == "slack not connected"

        failed = await client.get("/api/sync/tasks", headers=auth, params={"status": "failed"})
        assert len(failed.json()) == 1

    @pytest.mark.asyncio
    async def test_process_queue_with_nothing_pending(self, client, auth):
        response = await client.post("/api/sync/process-queue", headers=auth)

        assert response.json() == {"processed": 0, "results": []}

    @pytest.mark.asyncio
    async def test_process_queue_never_touches_other_users(self, client, auth, db_session):
        other_task = await SyncQueue(db_session).add_task(
            "someone-else", "slack", "send_message", {"text": "hi"}
        )
        other_id = other_task.id

        response = await client.post(
            "/api/sync/process-queue", headers=auth, params={"all_users": "true"}
        )

        assert response.json()["processed"] == 0
        stored = await SyncQueue(db_session).get_task(other_id)
        assert (stored.status, stored.attempts) == ("pending", 0)

    @pytest.mark.asyncio
    async def test_sync_all_without_integrations(self, client, auth):
        response = await client.post("/api/sync/sync-all", headers=auth)

        assert response.status_code == 200
        assert response.json() == {}

    @pytest.mark.asyncio
    async def test_poller_status(self, client):
        response = await client.get("/api/sync/status")

        assert response.status_code == 200
        assert response.json()["running"] is False


class TestIntegrationEndpoints:
    @pytest.mark.asyncio
    async def test_connect_list_disconnect(self, client, auth):
        connected = await client.post(
            "/api/integrations/slack",
            headers=auth,
            json={"access_token": "xoxb-1", "refresh_token": "r-1", "expires_in": 3600},
        )
        assert connected.status_code == 200
        assert connected.json()["connected"] is True
        assert connected.json()["token_expires_at"] is not None

        statuses = {s["provider"]: s for s in (await client.get("/api/integrations", headers=auth)).json()}
        assert statuses["slack"]["connected"] is True
        assert statuses["notion"]["connected"] is False
        assert statuses["slack"]["last_synced_at"] is not None

        removed = await client.delete("/api/integrations/slack", headers=auth)
        assert removed.status_code == 200
        again = await client.delete("/api/integrations/slack", headers=auth)
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_reconnect_keeps_single_row(self, client, auth):
        for token in ("first", "second"):
            await client.post("/api/integrations/notion", headers=auth, json={"access_token": token})

        statuses = (await client.get("/api/integrations", headers=auth)).json()
        assert sum(1 for s in statuses if s["connected"]) == 1

    @pytest.mark.asyncio
    async def test_unknown_provider_is_bad_request(self, client, auth):
        response = await client.post(
            "/api/integrations/myspace", headers=auth, json={"access_token": "x"}
        )

        assert response.status_code == 400


class TestFoodDeliveryEndpoints:
    @pytest.mark.asyncio
    async def test_restaurant_search_needs_no_connection(self, client, auth):
        response = await client.get(
            "/api/food-delivery/restaurants",
            headers=auth,
            params={"lat": "12.9", "lng": "77.6", "query": "pizza", "provider": "swiggy"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["provider"] == "swiggy"
        assert [r["name"] for r in body["restaurants"]] == ["Pizza Paradise"]

    @pytest.mark.asyncio
    async def test_menu_requires_connection(self, client, auth):
        response = await client.get("/api/food-delivery/restaurants/rest-001/menu", headers=auth)

        assert response.status_code == 400
        assert response.json()["detail"] == "food_delivery not connected"

    @pytest.mark.asyncio
    async def test_menu_and_orders(self, client, auth, user_id, db_session, connect):
        await connect(user_id, "food_delivery")
        order = await FoodDeliveryService(db_session, user_id).place_order(
            "Tasty Bites", "1 Main St", [{"name": "Naan", "price": 40, "quantity": 2}]
        )

        menu = await client.get("/api/food-delivery/restaurants/rest-001/menu", headers=auth)
        history = await client.get("/api/food-delivery/orders", headers=auth)
        status = await client.get(f"/api/food-delivery/orders/{order['order_id']}", headers=auth)
        missing = await client.get("/api/food-delivery/orders/order-0", headers=auth)

        assert menu.json()["restaurant"]["name"] == "Tasty Bites"
        assert len(menu.json()["menu_items"]) == 5
        assert [o["order_id"] for o in history.json()] == [order["order_id"]]
        assert status.json()["status"] == "placed"
        assert missing.status_code == 404


class TestRideEndpoints:
    @pytest.mark.asyncio
    async def test_estimate(self, client, auth, user_id, connect):
        await connect(user_id, "ride_service")

        response = await client.get(
            "/api/rides/estimate",
            headers=auth,
            params={"pickup": "Home", "dropoff": "Office", "provider": "ola"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["provider"] == "ola"
        assert 100 <= body["estimated_fare"] <= 600

    @pytest.mark.asyncio
    async def test_estimate_requires_connection(self, client, auth):
        response = await client.get(
            "/api/rides/estimate", headers=auth, params={"pickup": "Home", "dropoff": "Office"}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_bookings(self, client, auth, user_id, db_session, connect):
        await connect(user_id, "ride_service")
        booking = await RideService(db_session, user_id).book_ride("Home", "Office")

        history = await client.get("/api/rides/bookings", headers=auth)
        status = await client.get(f"/api/rides/bookings/{booking['booking_id']}", headers=auth)
        missing = await client.get("/api/rides/bookings/booking-0", headers=auth)

        assert [b["booking_id"] for b in history.json()] == [booking["booking_id"]]
        assert status.json()["status"] == "confirmed"
        assert missing.status_code == 404
