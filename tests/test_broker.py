"""
Kafka broker plumbing tests (no Kafka needed).
"""
import asyncio
from types import SimpleNamespace

import pytest

from notifyhub.errors import BrokerNotReadyError, ShutdownRequested
from notifyhub.models.message import NotificationMessage
from notifyhub.services.broker import KafkaBroker


class FakeConsumer:
    def __init__(self, batches):
        self.batches = list(batches)
        self.commits = []
        self.started = False
        self.stopped = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True

    async def getmany(self, timeout_ms=0):
        if self.batches:
            return self.batches.pop(0)
        await asyncio.sleep(0)
        return {}

    async def commit(self, offsets):
        self.commits.append(offsets)


def make_broker():
    return KafkaBroker("localhost:9092", "test", topics=["notification-requests"])


def records(*values):
    return [SimpleNamespace(offset=i, value=v) for i, v in enumerate(values)]


async def test_publish_before_start_raises_not_ready():
    broker = make_broker()
    assert broker.ready is False
    message = NotificationMessage(request_id=1, template_id=1)
    with pytest.raises(BrokerNotReadyError):
        await broker.publish("notification-requests", message)


async def test_consume_commits_each_record_after_handler(monkeypatch):
    broker = make_broker()
    consumer = FakeConsumer([{"tp0": records(b"a", b"b")}])
    monkeypatch.setattr(broker, "create_consumer", lambda topic, group_id: consumer)
    stop = asyncio.Event()
    seen = []

    async def handler(value):
        seen.append(value)
        if len(seen) == 2:
            stop.set()

    await broker.consume("notification-requests", "notification-group", handler, stop)

    assert seen == [b"a", b"b"]
    assert consumer.commits == [{"tp0": 1}, {"tp0": 2}]
    assert consumer.started and consumer.stopped


async def test_shutdown_leaves_record_uncommitted(monkeypatch):
    broker = make_broker()
    consumer = FakeConsumer([{"tp0": records(b"a", b"b")}])
    monkeypatch.setattr(broker, "create_consumer", lambda topic, group_id: consumer)

    async def handler(value):
        if value == b"b":
            raise ShutdownRequested()

    await broker.consume("notification-requests", "notification-group", handler, asyncio.Event())

    assert consumer.commits == [{"tp0": 1}]
    assert consumer.stopped


def test_message_payload_is_keyed_by_request_id():
    message = NotificationMessage(request_id=42, template_id=3, data={"code": "1"})
    payload = message.to_payload()

    assert message.key == "42"
    assert payload["request_id"] == 42
    assert payload["retry_count"] == 0
    assert "retry_at" not in payload
    assert "manual_retry" not in payload
    assert NotificationMessage.model_validate(payload) == message
