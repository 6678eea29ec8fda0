"""
Status & audit store.

Request lifecycle updates and the append-only notification log. Callers own
the transaction: nothing here commits.
"""
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from notifyhub.models.request import LogStatus, NotificationLog, NotificationRequest, RequestStatus
from notifyhub.models.template import Template


class StatusService:
    """Reads and writes request status and audit rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_request(self, request_id: int) -> NotificationRequest | None:
        return await self.db.get(NotificationRequest, request_id)

    async def mark_sent(self, request_id: int) -> None:
        # Never moves a request back to pending; failed -> sent only via replay
        await self.db.execute(
            update(NotificationRequest)
            .where(NotificationRequest.id == request_id)
            .where(NotificationRequest.status != RequestStatus.SENT)
            .values(status=RequestStatus.SENT, processed_at=datetime.now(timezone.utc))
        )

    async def mark_failed(self, request_id: int) -> None:
        await self.db.execute(
            update(NotificationRequest)
            .where(NotificationRequest.id == request_id)
            .where(NotificationRequest.status != RequestStatus.SENT)
            .values(status=RequestStatus.FAILED)
        )

    async def append_log(self, request_id: int, status: LogStatus, error_message: str | None = None) -> NotificationLog:
        entry = NotificationLog(request_id=request_id, status=status, error_message=error_message)
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_requests(self, limit: int = 50, offset: int = 0) -> tuple[list[dict], int]:
        """
        Page through requests, newest first, joined with the template name.

        Returns:
            (rows, total)
        """
        stmt = (
            select(NotificationRequest, Template.name)
            .outerjoin(Template, NotificationRequest.template_id == Template.id)
            .order_by(NotificationRequest.created_at.desc(), NotificationRequest.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        rows = [
            {**request.to_dict(), "template_name": template_name}
            for request, template_name in result.all()
        ]
        total = await self.db.scalar(select(func.count()).select_from(NotificationRequest))
        return rows, total or 0

    async def get_request_with_logs(self, request_id: int) -> dict | None:
        stmt = (
            select(NotificationRequest)
            .options(selectinload(NotificationRequest.logs))
            .where(NotificationRequest.id == request_id)
        )
        result = await self.db.execute(stmt)
        request = result.scalar_one_or_none()
        if not request:
            return None
        return {**request.to_dict(), "logs": [entry.to_dict() for entry in request.logs]}
