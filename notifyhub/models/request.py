"""
Notification request and audit log models.

A request is created pending by the API and moved to sent or failed by the
delivery worker. Log rows are append-only, one per processing outcome.
"""
import enum
from datetime import datetime
from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from notifyhub.models.base import Base, JSONType


class RequestStatus(str, enum.Enum):
    """Request status enum."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class LogStatus(str, enum.Enum):
    """Notification log outcome."""
    SUCCESS = "success"
    FAILED = "failed"


class NotificationRequest(Base):
    """A single request to send one templated email."""
    __tablename__ = "requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Not a foreign key: templates are not required to exist at write time
    template_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    status: Mapped[RequestStatus] = mapped_column(
        SQLEnum(RequestStatus, native_enum=False,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RequestStatus.PENDING
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    logs = relationship(
        "NotificationLog",
        back_populates="request",
        order_by="NotificationLog.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_name": self.user_name,
            "user_email": self.user_email,
            "template_id": self.template_id,
            "data": self.data,
            "status": self.status.value if isinstance(self.status, RequestStatus) else self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }

    def __repr__(self):
        return f"<NotificationRequest(id={self.id}, template_id={self.template_id}, status={self.status})>"


class NotificationLog(Base):
    """Append-only audit row for one processing attempt outcome."""
    __tablename__ = "notification_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status: Mapped[LogStatus] = mapped_column(
        SQLEnum(LogStatus, native_enum=False,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    request = relationship("NotificationRequest", back_populates="logs")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "status": self.status.value if isinstance(self.status, LogStatus) else self.status,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
