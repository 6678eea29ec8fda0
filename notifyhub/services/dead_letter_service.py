"""
Dead-letter store and replay.

Capture keeps full history: a request whose replay fails again gets another
entry. ``retry_attempted`` is a one-shot marker set on replay; nothing here
ever resets it.
"""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from notifyhub.errors import BrokerNotReadyError, DeadLetterAlreadyRetried
from notifyhub.logging_config import get_logger
from notifyhub.models.dead_letter import DeadLetterEntry
from notifyhub.models.message import NotificationMessage
from notifyhub.routes.metrics import track_dlq_replayed

log = get_logger(component="dead_letter")


class DeadLetterService:
    """Capture, inspect and replay dead-lettered notification messages."""

    def __init__(self, db: AsyncSession, broker=None, topic: str | None = None,
                 max_retries: int = 3, batch_size: int = 50):
        self.db = db
        self.broker = broker
        self.topic = topic
        self.max_retries = max_retries
        self.batch_size = batch_size

    async def capture(self, message: NotificationMessage, error_message: str) -> DeadLetterEntry:
        """Insert an entry from the message snapshot. Caller commits."""
        entry = DeadLetterEntry(
            request_id=message.request_id,
            user_name=message.user_name,
            user_email=message.user_email,
            template_id=message.template_id,
            data=message.data,
            error_message=error_message,
            retry_count=message.retry_count,
            retry_attempted=False,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def get_entry(self, entry_id: int) -> DeadLetterEntry | None:
        return await self.db.get(DeadLetterEntry, entry_id)

    async def list_entries(self, limit: int = 50, offset: int = 0) -> list[DeadLetterEntry]:
        stmt = (
            select(DeadLetterEntry)
            .order_by(DeadLetterEntry.failed_at.desc(), DeadLetterEntry.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def stats(self) -> dict:
        stmt = select(
            func.count(DeadLetterEntry.id),
            func.count(DeadLetterEntry.id).filter(DeadLetterEntry.retry_attempted.is_(False)),
            func.min(DeadLetterEntry.failed_at),
            func.max(DeadLetterEntry.failed_at),
        )
        total, pending, oldest, newest = (await self.db.execute(stmt)).one()
        pending = pending or 0
        return {
            "total": total or 0,
            "pending_retry": pending,
            "retry_attempted": (total or 0) - pending,
            "oldest_failed_at": oldest.isoformat() if oldest else None,
            "newest_failed_at": newest.isoformat() if newest else None,
        }

    def _replay_message(self, entry: DeadLetterEntry) -> NotificationMessage:
        return NotificationMessage.from_request(entry, max_retries=self.max_retries, manual_retry=True)

    def _require_broker(self):
        if self.broker is None or not self.broker.ready:
            raise BrokerNotReadyError()

    async def retry_entry(self, entry_id: int) -> DeadLetterEntry | None:
        """
        Republish one entry with a fresh retry budget, then flag it.

        Returns:
            The entry, None if not found

        Raises:
            BrokerNotReadyError: if the producer is not ready
            DeadLetterAlreadyRetried: if the entry was already requeued
        """
        entry = await self.get_entry(entry_id)
        if not entry:
            return None
        if entry.retry_attempted:
            raise DeadLetterAlreadyRetried(entry.id)
        self._require_broker()

        await self.broker.publish(self.topic, self._replay_message(entry))

        entry.retry_attempted = True
        await self.db.commit()
        await self.db.refresh(entry)

        track_dlq_replayed("single")
        log.info("dlq_entry_requeued", entry_id=entry.id, request_id=entry.request_id)
        return entry

    async def retry_all(self) -> list[DeadLetterEntry]:
        """
        Republish up to ``batch_size`` unattempted entries, oldest failure first.

        All selected entries are published as one batch and flagged together.
        """
        self._require_broker()

        stmt = (
            select(DeadLetterEntry)
            .where(DeadLetterEntry.retry_attempted.is_(False))
            .order_by(DeadLetterEntry.failed_at.asc(), DeadLetterEntry.id.asc())
            .limit(self.batch_size)
            .with_for_update(skip_locked=True)
        )
        result = await self.db.execute(stmt)
        entries = list(result.scalars().all())
        if not entries:
            await self.db.rollback()
            return []

        await self.broker.publish_batch(self.topic, [self._replay_message(e) for e in entries])

        for entry in entries:
            entry.retry_attempted = True
        await self.db.commit()

        track_dlq_replayed("bulk", len(entries))
        log.info("dlq_bulk_requeued", count=len(entries))
        return entries

    async def delete_entry(self, entry_id: int) -> bool:
        """Delete one entry. The originating request is left untouched."""
        entry = await self.get_entry(entry_id)
        if not entry:
            return False
        await self.db.delete(entry)
        await self.db.commit()
        return True
