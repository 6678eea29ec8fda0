"""
Sentry configuration for error tracking.

Captures unhandled exceptions from the API and the delivery worker.
"""
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from notifyhub.config import settings
from notifyhub.logging_config import get_logger

log = get_logger(component="sentry")


def configure_sentry(service: str = "producer"):
    """
    Initialize Sentry with FastAPI and SQLAlchemy integrations.

    Requires SENTRY_DSN environment variable to be set.
    """
    dsn = settings.SENTRY_DSN

    if not dsn:
        log.warning("sentry_disabled", reason="SENTRY_DSN not set")
        return

    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        before_send=add_context,
        # Sample rate: capture 10% of transactions for performance monitoring
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=settings.APP_VERSION,
        server_name=service,
    )
    sentry_sdk.set_tag("service", service)

    log.info("sentry_initialized", dsn_prefix=dsn[:20])


def add_context(event, hint):
    """
    Tag error events with the request they were raised for, when known.

    The worker binds request_id into structlog contextvars while processing.
    """
    from structlog.contextvars import get_contextvars

    request_id = get_contextvars().get("request_id")
    if request_id is not None:
        event.setdefault("tags", {})["request_id"] = str(request_id)
    return event


def capture_exception(exc_info=None):
    """
    Capture an exception to Sentry.

    Usage:
        try:
            # some code
        except Exception:
            capture_exception()
    """
    if sentry_sdk.get_client().is_active():
        sentry_sdk.capture_exception(exc_info)
