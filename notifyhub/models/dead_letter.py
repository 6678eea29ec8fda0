"""
Dead Letter Queue model.

Stores messages whose retry budget is exhausted, for inspection and manual
replay. Not unique per request: repeated terminal failures of replayed
messages add further rows.
"""
from datetime import datetime, timezone
from sqlalchemy import Integer, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from notifyhub.models.base import Base, JSONType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeadLetterEntry(Base):
    """Snapshot of a terminally failed notification message."""
    __tablename__ = "dead_letter_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    template_id: Mapped[int] = mapped_column(Integer, nullable=False)
    data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # One-shot "has been manually requeued" marker, not a success flag
    retry_attempted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    failed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "user_name": self.user_name,
            "user_email": self.user_email,
            "template_id": self.template_id,
            "data": self.data,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "retry_attempted": self.retry_attempted,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
        }

    def __repr__(self):
        return f"<DeadLetterEntry(id={self.id}, request_id={self.request_id}, retry_attempted={self.retry_attempted})>"
