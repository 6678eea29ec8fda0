"""
Health, metrics, log shipping and email gateway tests.
"""
import asyncio
import json

import aiosmtplib
import httpx
import pytest

from notifyhub.errors import DeliveryError
from notifyhub.services.email_gateway import SMTPEmailGateway
from notifyhub.services.log_shipper import LogShipper


async def test_health_reports_broker_and_cache(client, broker, fake_redis):
    body = (await client.get("/health")).json()
    assert body["status"] == "ok"
    assert body["brokerReady"] is True
    assert body["cacheConnected"] is True
    assert body["timestamp"]

    broker._ready = False
    fake_redis.down = True
    body = (await client.get("/health")).json()
    assert body["brokerReady"] is False
    assert body["cacheConnected"] is False


async def test_metrics_endpoint(client):
    await client.post("/api/notifications", json={"template_id": 1, "data": {}})
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "notifications_accepted_total" in response.text


async def test_log_shipper_posts_events():
    received = []

    def handler(request: httpx.Request):
        received.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200)

    shipper = LogShipper(transport=httpx.MockTransport(handler))
    shipper.start("http://logs.local/", service="consumer")
    assert shipper.enqueue("warning", "cache_unavailable", {"detail": "x"})
    await asyncio.wait_for(shipper._queue.join(), timeout=1)
    await shipper.stop()

    [(path, body)] = received
    assert path == "/api/log"
    assert body["service"] == "consumer"
    assert body["level"] == "warning"
    assert body["message"] == "cache_unavailable"
    assert body["details"] == {"detail": "x"}


async def test_log_shipper_drops_when_full_or_server_down():
    def handler(request):
        raise httpx.ConnectError("refused")

    shipper = LogShipper(maxsize=2, transport=httpx.MockTransport(handler))
    shipper.start("http://logs.local", service="producer")
    assert shipper.enqueue("info", "a")
    assert shipper.enqueue("info", "b")
    assert not shipper.enqueue("info", "c")

    await asyncio.wait_for(shipper._queue.join(), timeout=1)
    await shipper.stop()
    assert shipper.dropped == 3


def test_log_shipper_processor_passes_event_through():
    shipper = LogShipper()
    event = {"event": "x", "level": "info"}
    assert shipper(None, "info", event) is event


def test_email_message_headers():
    gateway = SMTPEmailGateway("smtp.local", 587, sender='"NotifyHub" <noreply@notify.local>')
    msg = gateway.build_message("ada@example.com", "Code 123", "<p>123</p>")
    assert msg["To"] == "ada@example.com"
    assert msg["Subject"] == "Code 123"
    assert msg["Message-ID"]
    assert msg.get_content_subtype() == "html"


async def test_email_smtp_error_becomes_delivery_error(monkeypatch):
    async def failing_send(*args, **kwargs):
        raise aiosmtplib.SMTPException("550 rejected")

    monkeypatch.setattr(aiosmtplib, "send", failing_send)
    gateway = SMTPEmailGateway("smtp.local", 587)

    with pytest.raises(DeliveryError):
        await gateway.send("ada@example.com", "s", "<p>h</p>")


async def test_email_without_recipient_fails():
    with pytest.raises(DeliveryError):
        await SMTPEmailGateway("smtp.local", 587).send("", "s", "h")
