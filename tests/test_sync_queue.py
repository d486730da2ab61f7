from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy import func, select

from jarvis.errors import ValidationError
from jarvis.models.sync_task import SyncTask
from jarvis.services.sync_queue_service import SyncQueue


async def _count(session) -> int:
    result = await session.execute(select(func.count()).select_from(SyncTask))
    return result.scalar_one()


class TestAddTask:
    """Enqueue validation and defaults."""

    @pytest.mark.asyncio
    async def test_defaults(self, db_session, user_id, clock):
        queue = SyncQueue(db_session, clock=clock)

        task = await queue.add_task(user_id, "slack", "send_message", {"channel": "C1", "text": "hi"})

        assert task.id is not None
        assert task.status == "pending"
        assert task.attempts == 0
        assert task.priority == 5
        assert task.scheduled_at == clock.now
        assert task.error is None
        assert task.completed_at is None

    @pytest.mark.asyncio
    async def test_explicit_priority_and_schedule(self, db_session, user_id, clock):
        queue = SyncQueue(db_session, clock=clock)
        later = dt.datetime(2026, 3, 2, 11, 30, tzinfo=dt.timezone(dt.timedelta(hours=2)))

        task = await queue.add_task(
            user_id, "notion", "create_page", {"parent": {"database_id": "db"}},
            priority=1, scheduled_at=later, resource_id="db",
        )

        assert task.priority == 1
        # Stored as naive UTC
        assert task.scheduled_at == dt.datetime(2026, 3, 2, 9, 30)
        assert task.resource_id == "db"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "integration_type, operation, payload",
        [
            (None, "send_message", {"text": "hi"}),
            ("slack", "", {"text": "hi"}),
            ("slack", "send_message", None),
        ],
    )
    async def test_missing_fields_rejected_before_write(
        self, db_session, user_id, clock, integration_type, operation, payload
    ):
        queue = SyncQueue(db_session, clock=clock)

        with pytest.raises(ValidationError):
            await queue.add_task(user_id, integration_type, operation, payload)

        assert await _count(db_session) == 0

    @pytest.mark.asyncio
    async def test_missing_user_rejected(self, db_session, clock):
        with pytest.raises(ValidationError):
            await SyncQueue(db_session, clock=clock).add_task("", "slack", "send_message", {"a": 1})

    @pytest.mark.asyncio
    async def test_duplicate_payloads_are_both_queued(self, db_session, user_id, clock):
        queue = SyncQueue(db_session, clock=clock)
        payload = {"channel": "C1", "text": "same"}

        first = await queue.add_task(user_id, "slack", "send_message", payload)
        second = await queue.add_task(user_id, "slack", "send_message", payload)

        assert first.id != second.id
        assert await _count(db_session) == 2

    @pytest.mark.asyncio
    async def test_empty_payload_object_is_accepted(self, db_session, user_id, clock):
        task = await SyncQueue(db_session, clock=clock).add_task(
            user_id, "ride_service", "book_ride", {}
        )

        assert task.payload == {}
        assert task.status == "pending"
        assert await _count(db_session) == 1


class TestQueueQueries:
    """get_task / list_tasks."""

    @pytest.mark.asyncio
    async def test_get_task_is_scoped_to_user(self, db_session, user_id, clock):
        queue = SyncQueue(db_session, clock=clock)
        task = await queue.add_task(user_id, "slack", "send_message", {"text": "hi"})

        assert (await queue.get_task(task.id, user_id)).id == task.id
        assert await queue.get_task(task.id, "someone-else") is None

    @pytest.mark.asyncio
    async def test_list_tasks_newest_first_with_status_filter(self, db_session, user_id, clock):
        queue = SyncQueue(db_session, clock=clock)
        older = await queue.add_task(user_id, "slack", "send_message", {"text": "1"})
        clock.advance(seconds=10)
        newer = await queue.add_task(user_id, "slack", "send_message", {"text": "2"})
        await queue.add_task("other-user", "slack", "send_message", {"text": "3"})

        tasks = await queue.list_tasks(user_id)
        assert [t.id for t in tasks] == [newer.id, older.id]

        assert await queue.list_tasks(user_id, status="completed") == []
        assert len(await queue.list_tasks(user_id, status="pending", limit=1)) == 1
