"""
Delivery worker state machine.

Per consumed message: RECEIVED -> RENDERING -> DELIVERING -> SENT, or
FAILED -> (retry scheduled | dead-lettered). The caller commits the broker
offset whatever the outcome; only an explicit republish brings a message back.

Retry policy: below max_retries the worker republishes the message to the
retry topic with retry_count + 1 and a retry_at deadline. The request stays
pending until the terminal outcome, so its status is written once.
"""
import asyncio
import enum
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker
from structlog.contextvars import bound_contextvars

from notifyhub.errors import DeliveryError, ShutdownRequested, TemplateNotFoundError
from notifyhub.logging_config import get_logger
from notifyhub.models.message import NotificationMessage
from notifyhub.models.request import LogStatus, RequestStatus
from notifyhub.models.template import Template
from notifyhub.routes.metrics import (
    track_dead_lettered,
    track_notification_failed,
    track_notification_retried,
    track_notification_sent,
)
from notifyhub.sentry_config import capture_exception
from notifyhub.services.dead_letter_service import DeadLetterService
from notifyhub.services.outbox import PUBLISH_ERRORS
from notifyhub.services.renderer import build_variables, render_template
from notifyhub.services.status_service import StatusService

log = get_logger(component="delivery")


class DeliveryOutcome(str, enum.Enum):
    SENT = "sent"
    RETRY_SCHEDULED = "retry_scheduled"
    DEAD_LETTERED = "dead_lettered"
    SKIPPED = "skipped"
    DROPPED = "dropped"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryWorker:
    """Renders, sends and records the outcome of notification messages."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        gateway,
        broker,
        retry_topic: str,
        retry_delays: Sequence[int] = (5, 25, 125),
        send_timeout: float = 30.0,
        stop_event: asyncio.Event | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.broker = broker
        self.retry_topic = retry_topic
        self.retry_delays = list(retry_delays) or [0]
        self.send_timeout = send_timeout
        self.stop_event = stop_event or asyncio.Event()
        self.clock = clock

    def retry_delay(self, retry_count: int) -> int:
        """Delay before the attempt after ``retry_count``; the last value repeats."""
        return self.retry_delays[min(retry_count, len(self.retry_delays) - 1)]

    async def handle_record(self, value: bytes) -> DeliveryOutcome:
        """
        Consumer callback for one raw broker record.

        Never raises for processing failures, so the offset is always
        committed. Raises ShutdownRequested if shutdown arrives while waiting
        for a scheduled retry.
        """
        try:
            message = NotificationMessage.model_validate_json(value)
        except ValidationError as e:
            log.warning("malformed_message_dropped", error=str(e), payload=value[:200])
            return DeliveryOutcome.DROPPED

        if message.retry_at is not None:
            await self._wait_until(message.retry_at)

        with bound_contextvars(request_id=message.request_id):
            try:
                return await self.process(message)
            except Exception as e:
                log.exception("message_processing_error", error=str(e))
                capture_exception(e)
                return DeliveryOutcome.DROPPED

    async def _wait_until(self, retry_at: datetime) -> None:
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=timezone.utc)
        delay = (retry_at - self.clock()).total_seconds()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise ShutdownRequested()

    async def process(self, message: NotificationMessage) -> DeliveryOutcome:
        msg_log = log.bind(
            request_id=message.request_id,
            template_id=message.template_id,
            retry_count=message.retry_count,
        )
        msg_log.info("notification_processing", recipient=message.user_email)

        async with self.session_factory() as db:
            status = StatusService(db)

            request = await status.get_request(message.request_id)
            if request is None:
                msg_log.warning("request_not_found_dropped")
                return DeliveryOutcome.DROPPED
            if request.status == RequestStatus.SENT:
                # Duplicate from the at-least-once broker
                msg_log.info("notification_already_sent")
                return DeliveryOutcome.SKIPPED

            try:
                # RENDERING
                template = await db.get(Template, message.template_id)
                if template is None:
                    raise TemplateNotFoundError(message.template_id)
                variables = build_variables(message.user_name, message.user_email, message.data)
                subject, html = render_template(template, variables)
                msg_log.info("template_rendered", template_name=template.name)

                # DELIVERING
                try:
                    delivery_id = await asyncio.wait_for(
                        self.gateway.send(message.user_email, subject, html),
                        timeout=self.send_timeout,
                    )
                except asyncio.TimeoutError as e:
                    raise DeliveryError(f"Email delivery timed out after {self.send_timeout}s") from e
            except Exception as e:
                # Any rendering or gateway error is a delivery failure
                return await self._handle_failure(db, message, e, msg_log)

            await status.mark_sent(message.request_id)
            await status.append_log(message.request_id, LogStatus.SUCCESS)
            await db.commit()

        track_notification_sent()
        msg_log.info("notification_sent", delivery_id=delivery_id, subject=subject)
        return DeliveryOutcome.SENT

    async def _handle_failure(self, db, message: NotificationMessage, error: Exception, msg_log) -> DeliveryOutcome:
        error_message = str(error) or error.__class__.__name__
        reason = "template_not_found" if isinstance(error, TemplateNotFoundError) else "delivery_error"
        track_notification_failed(reason)
        msg_log.error("notification_failed", error=error_message, reason=reason)

        status = StatusService(db)
        await status.append_log(message.request_id, LogStatus.FAILED, error_message)

        if message.retry_count >= message.max_retries:
            msg_log.warning("max_retries_reached", max_retries=message.max_retries)
            return await self._dead_letter(db, message, error_message, msg_log)

        retry_at = self.clock() + timedelta(seconds=self.retry_delay(message.retry_count))
        retry = message.model_copy(update={
            "retry_count": message.retry_count + 1,
            "retry_at": retry_at,
            "timestamp": self.clock(),
        })
        try:
            await self.broker.publish(self.retry_topic, retry)
        except PUBLISH_ERRORS as e:
            msg_log.error("retry_publish_failed", error=str(e))
            return await self._dead_letter(db, message, error_message, msg_log)

        await db.commit()
        track_notification_retried()
        msg_log.info(
            "notification_retry_scheduled",
            next_retry_count=retry.retry_count,
            max_retries=message.max_retries,
            retry_at=retry_at.isoformat(),
        )
        return DeliveryOutcome.RETRY_SCHEDULED

    async def _dead_letter(self, db, message: NotificationMessage, error_message: str, msg_log) -> DeliveryOutcome:
        await DeadLetterService(db).capture(message, error_message)
        await StatusService(db).mark_failed(message.request_id)
        await db.commit()
        track_dead_lettered()
        msg_log.warning("notification_dead_lettered", error=error_message)
        return DeliveryOutcome.DEAD_LETTERED
