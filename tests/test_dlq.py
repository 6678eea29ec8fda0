"""
Dead-letter queue inspection and replay tests.
"""
from datetime import datetime, timedelta, timezone

import pytest
from aiokafka.errors import KafkaConnectionError

from notifyhub.models.dead_letter import DeadLetterEntry
from notifyhub.models.message import NotificationMessage
from notifyhub.services.dead_letter_service import DeadLetterService

BASE = datetime(2026, 10, 1, 8, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_entry(session_factory, make_request):
    async def _make(minutes=0, retry_attempted=False, error="Template with ID 7 not found"):
        request = await make_request(7, data={"code": "1"})
        async with session_factory() as db:
            entry = DeadLetterEntry(
                request_id=request.id,
                user_name=request.user_name,
                user_email=request.user_email,
                template_id=request.template_id,
                data=request.data,
                error_message=error,
                retry_count=3,
                retry_attempted=retry_attempted,
                failed_at=BASE + timedelta(minutes=minutes),
            )
            db.add(entry)
            await db.commit()
            await db.refresh(entry)
            return entry
    return _make


async def test_list_is_most_recent_first(client, make_entry):
    older = await make_entry(minutes=0)
    newer = await make_entry(minutes=10)

    response = await client.get("/api/dlq")

    assert response.status_code == 200
    assert [e["id"] for e in response.json()] == [newer.id, older.id]


async def test_stats(client, make_entry):
    await make_entry(minutes=0)
    await make_entry(minutes=5, retry_attempted=True)
    await make_entry(minutes=9)

    stats = (await client.get("/api/dlq/stats")).json()

    assert stats["total"] == 3
    assert stats["pending_retry"] == 2
    assert stats["retry_attempted"] == 1
    assert stats["oldest_failed_at"].startswith("2026-10-01T08:00:00")
    assert stats["newest_failed_at"].startswith("2026-10-01T08:09:00")


async def test_retry_single_entry(client, broker, make_entry, settings):
    entry = await make_entry()

    response = await client.post(f"/api/dlq/{entry.id}/retry")

    assert response.status_code == 200
    assert response.json()["entry"]["retry_attempted"] is True

    [message] = broker.messages(settings.NOTIFICATION_TOPIC)
    assert message.request_id == entry.request_id
    assert message.retry_count == 0
    assert message.max_retries == settings.MAX_RETRIES
    assert message.manual_retry is True
    assert message.data == {"code": "1"}


async def test_retry_unknown_entry_is_404(client):
    assert (await client.post("/api/dlq/999/retry")).status_code == 404


async def test_retry_of_already_retried_entry_is_409(client, broker, make_entry):
    entry = await make_entry(retry_attempted=True)

    response = await client.post(f"/api/dlq/{entry.id}/retry")

    assert response.status_code == 409
    assert broker.messages() == []


async def test_single_retry_is_one_shot(client, broker, make_entry):
    entry = await make_entry()

    assert (await client.post(f"/api/dlq/{entry.id}/retry")).status_code == 200
    assert (await client.post(f"/api/dlq/{entry.id}/retry")).status_code == 409
    assert len(broker.messages()) == 1


async def test_retry_when_broker_not_ready_is_503(client, broker, make_entry):
    entry = await make_entry()
    broker._ready = False

    response = await client.post(f"/api/dlq/{entry.id}/retry")

    assert response.status_code == 503


async def test_retry_publish_error_leaves_entry_unflagged(client, broker, make_entry, session_factory):
    entry = await make_entry()
    broker.fail = KafkaConnectionError("down")

    response = await client.post(f"/api/dlq/{entry.id}/retry")

    assert response.status_code == 502
    async with session_factory() as db:
        assert (await db.get(DeadLetterEntry, entry.id)).retry_attempted is False


async def test_retry_all_requeues_unattempted_entries(client, broker, make_entry):
    first = await make_entry(minutes=0)
    await make_entry(minutes=1, retry_attempted=True)
    second = await make_entry(minutes=2)

    response = await client.post("/api/dlq/retry-all")

    assert response.status_code == 200
    assert response.json()["count"] == 2
    assert response.json()["ids"] == [first.id, second.id]
    assert [m.request_id for m in broker.messages()] == [first.request_id, second.request_id]

    # Already flagged entries are not picked up again
    again = await client.post("/api/dlq/retry-all")
    assert again.json()["count"] == 0


async def test_retry_all_is_capped_and_oldest_first(session_factory, broker, make_entry):
    newest = await make_entry(minutes=30)
    oldest = await make_entry(minutes=0)
    middle = await make_entry(minutes=15)

    async with session_factory() as db:
        service = DeadLetterService(db, broker=broker, topic="notification-requests", batch_size=2)
        requeued = await service.retry_all()

    assert [e.id for e in requeued] == [oldest.id, middle.id]
    assert len(broker.messages()) == 2

    async with session_factory() as db:
        assert (await db.get(DeadLetterEntry, newest.id)).retry_attempted is False
        assert (await db.get(DeadLetterEntry, oldest.id)).retry_attempted is True


async def test_capture_keeps_history(session_factory, make_request):
    request = await make_request(7)
    message = NotificationMessage.from_request(request)

    async with session_factory() as db:
        service = DeadLetterService(db)
        await service.capture(message, "first failure")
        await service.capture(message, "second failure")
        await db.commit()
        entries = await service.list_entries()

    assert len(entries) == 2
    assert {e.request_id for e in entries} == {request.id}


async def test_delete_entry(client, make_entry):
    entry = await make_entry()

    assert (await client.delete(f"/api/dlq/{entry.id}")).status_code == 200
    assert (await client.delete(f"/api/dlq/{entry.id}")).status_code == 404
    assert (await client.get("/api/dlq")).json() == []
