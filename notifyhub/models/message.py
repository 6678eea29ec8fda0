"""
Broker message payload.

A denormalised snapshot of a request taken at publish time. The same
request_id may be published several times (scheduled retries, manual replay).
"""
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationMessage(BaseModel):
    """JSON value of a record on the notification topics, keyed by request_id."""
    request_id: int
    user_name: str | None = None
    user_email: str | None = None
    template_id: int
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
    retry_count: int = 0
    max_retries: int = 3
    manual_retry: bool | None = None
    # Set on scheduled retries: not to be processed before this instant
    retry_at: datetime | None = None

    @property
    def key(self) -> str:
        return str(self.request_id)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_request(cls, request, max_retries: int = 3, **extra) -> "NotificationMessage":
        """Build a fresh message (retry_count=0) from a request-like row."""
        return cls(
            request_id=request.request_id if hasattr(request, "request_id") else request.id,
            user_name=request.user_name,
            user_email=request.user_email,
            template_id=request.template_id,
            data=request.data or {},
            retry_count=0,
            max_retries=max_retries,
            **extra,
        )
