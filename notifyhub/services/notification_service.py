"""
Notification ingestion service.

Persists requests together with their outbox rows in one transaction, then
publishes the whole call's messages to the broker as a single batch.
"""
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.errors import BrokerNotReadyError
from notifyhub.logging_config import get_logger
from notifyhub.models.message import NotificationMessage
from notifyhub.models.outbox import OutboxEntry
from notifyhub.models.request import NotificationRequest, RequestStatus
from notifyhub.routes.metrics import track_notifications_accepted
from notifyhub.services.outbox import PUBLISH_ERRORS, publish_entries

log = get_logger(component="ingestion")


def is_acceptable(entry: Any) -> bool:
    """
    Entries need a data map and an integer template_id (a digit string is
    also taken). Booleans and floats are not template ids.
    """
    if not isinstance(entry, dict) or not isinstance(entry.get("data"), dict):
        return False
    template_id = entry.get("template_id")
    if isinstance(template_id, bool):
        return False
    if isinstance(template_id, int):
        return True
    return isinstance(template_id, str) and template_id.isascii() and template_id.isdigit()


class NotificationService:
    """Creates notification requests and hands them to the broker."""

    def __init__(self, db: AsyncSession, broker, topic: str, max_retries: int = 3):
        self.db = db
        self.broker = broker
        self.topic = topic
        self.max_retries = max_retries

    async def create_notifications(self, entries: list[dict]) -> list[NotificationRequest]:
        """
        Create one pending request per acceptable entry and publish them.

        Raises:
            BrokerNotReadyError: before anything is persisted, if the producer
                has not finished its startup sequence
        """
        if not self.broker.ready:
            raise BrokerNotReadyError()

        accepted = [e for e in entries if is_acceptable(e)]
        if len(accepted) != len(entries):
            log.info("notification_entries_skipped", skipped=len(entries) - len(accepted))
        if not accepted:
            return []

        requests = [
            NotificationRequest(
                user_name=entry.get("user_name"),
                user_email=entry.get("user_email"),
                template_id=int(entry["template_id"]),
                data=entry["data"],
                status=RequestStatus.PENDING,
            )
            for entry in accepted
        ]
        self.db.add_all(requests)
        await self.db.flush()

        outbox = []
        for request in requests:
            message = NotificationMessage.from_request(request, max_retries=self.max_retries)
            outbox.append(OutboxEntry(
                request_id=request.id,
                topic=self.topic,
                message_key=message.key,
                payload=message.to_payload(),
            ))
        self.db.add_all(outbox)
        await self.db.commit()
        for request in requests:
            await self.db.refresh(request)

        track_notifications_accepted(len(requests))

        try:
            await publish_entries(self.db, self.broker, outbox)
        except PUBLISH_ERRORS as e:
            # Rows are durable in the outbox; the relay will publish them
            log.warning(
                "notification_publish_deferred",
                request_ids=[r.id for r in requests],
                error=str(e),
            )
        else:
            for request in requests:
                log.info("notification_request_created", request_id=request.id, template_id=request.template_id)

        return requests
