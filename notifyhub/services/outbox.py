"""
Outbox relay.

Notification messages are written to the outbox in the same transaction as
their requests. The API publishes them right away; anything left pending
(broker hiccup, process crash) is picked up by the relay loop.
"""
import asyncio
from datetime import datetime, timedelta, timezone

from aiokafka.errors import KafkaError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifyhub.errors import BrokerNotReadyError
from notifyhub.logging_config import get_logger
from notifyhub.models.message import NotificationMessage
from notifyhub.models.outbox import OutboxEntry, OutboxStatus

log = get_logger(component="outbox")

PUBLISH_ERRORS = (KafkaError, BrokerNotReadyError, OSError, asyncio.TimeoutError)


async def publish_entries(db: AsyncSession, broker, entries: list[OutboxEntry]) -> None:
    """
    Publish outbox rows, grouped per topic, and mark them published.

    On failure the rows stay pending with the error recorded, and the
    exception propagates.
    """
    by_topic: dict[str, list[OutboxEntry]] = {}
    for entry in entries:
        by_topic.setdefault(entry.topic, []).append(entry)

    try:
        for topic, rows in by_topic.items():
            messages = [NotificationMessage.model_validate(row.payload) for row in rows]
            await broker.publish_batch(topic, messages)
    except PUBLISH_ERRORS as e:
        for entry in entries:
            entry.attempts += 1
            entry.last_error = str(e)
        await db.commit()
        raise

    now = datetime.now(timezone.utc)
    for entry in entries:
        entry.attempts += 1
        entry.status = OutboxStatus.PUBLISHED
        entry.published_at = now
        entry.last_error = None
    await db.commit()


class OutboxRelay:
    """Background loop republishing pending outbox rows."""

    def __init__(self, session_factory: async_sessionmaker, broker,
                 interval: float = 5.0, batch_size: int = 100,
                 min_age: float | None = None):
        self.session_factory = session_factory
        self.broker = broker
        self.interval = interval
        self.batch_size = batch_size
        # Younger rows may still be in flight on the API's own publish
        self.min_age = interval if min_age is None else min_age

    async def relay_once(self) -> int:
        """
        Publish one batch of pending rows older than ``min_age`` seconds.

        Returns how many were published.
        """
        if not self.broker.ready:
            return 0

        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.min_age)

        async with self.session_factory() as db:
            stmt = (
                select(OutboxEntry)
                .where(OutboxEntry.status == OutboxStatus.PENDING)
                .where(OutboxEntry.created_at <= cutoff)
                .order_by(OutboxEntry.created_at.asc(), OutboxEntry.id.asc())
                .limit(self.batch_size)
                .with_for_update(skip_locked=True)
            )
            result = await db.execute(stmt)
            entries = list(result.scalars().all())
            if not entries:
                return 0

            await publish_entries(db, self.broker, entries)
            log.info("outbox_relayed", count=len(entries))
            return len(entries)

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.relay_once()
            except (*PUBLISH_ERRORS, SQLAlchemyError) as e:
                log.warning("outbox_relay_failed", error=str(e))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
