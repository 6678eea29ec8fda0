"""
NotifyHub - Notification delivery pipeline

FastAPI application entry point (the producer service).
"""
import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import observability modules
from notifyhub.config import settings
from notifyhub.logging_config import configure_logging, get_logger
from notifyhub.sentry_config import configure_sentry
from notifyhub.middleware.logging import LoggingMiddleware
from notifyhub.middleware.rate_limit import RateLimitHeadersMiddleware
from notifyhub.routes.metrics import router as metrics_router
from notifyhub.services.log_shipper import log_shipper

# Import route modules
from notifyhub.dependencies.rate_limit import check_rate_limit
from notifyhub.errors import RateLimitExceeded
from notifyhub.routes.dlq import router as dlq_router
from notifyhub.routes.notifications import router as notifications_router
from notifyhub.routes.templates import router as templates_router
from notifyhub.services.context import ServiceContext
from notifyhub.services.outbox import OutboxRelay

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry(service="producer")

log = get_logger(component="api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    context: ServiceContext = app.state.context
    log_shipper.start(context.settings.LOG_SERVER_URL, service="producer")

    if not context.started:
        await context.start()

    relay = OutboxRelay(
        context.session_factory,
        context.broker,
        interval=context.settings.OUTBOX_RELAY_INTERVAL,
        batch_size=context.settings.OUTBOX_BATCH_SIZE,
        min_age=context.settings.OUTBOX_MIN_AGE,
    )
    stop_event = asyncio.Event()
    relay_task = asyncio.create_task(relay.run(stop_event))
    log.info("producer_started", topic=context.settings.NOTIFICATION_TOPIC)

    try:
        yield
    finally:
        stop_event.set()
        await relay_task
        await context.stop()
        log.info("producer_stopped")
        await log_shipper.stop()


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests", "retryAfter": exc.retry_after},
        headers={
            "Retry-After": str(exc.retry_after),
            "X-RateLimit-Limit": str(exc.limit),
            "X-RateLimit-Remaining": "0",
        },
    )


def create_app(context: ServiceContext | None = None) -> FastAPI:
    """Build the application around an explicit service context."""
    if context is None:
        context = ServiceContext.from_settings(settings, client_id=f"{settings.KAFKA_CLIENT_ID}-producer")

    app = FastAPI(
        title=context.settings.APP_NAME,
        version=context.settings.APP_VERSION,
        description="Template-based email notification pipeline",
        lifespan=lifespan,
    )
    app.state.context = context

    # Add logging middleware FIRST (runs before other middleware)
    app.add_middleware(LoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=context.settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RateLimitHeadersMiddleware)

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Metrics and health stay outside the rate limit
    app.include_router(metrics_router)

    rate_limited = [Depends(check_rate_limit)]
    app.include_router(templates_router, dependencies=rate_limited)
    app.include_router(notifications_router, dependencies=rate_limited)
    app.include_router(dlq_router, dependencies=rate_limited)

    @app.get("/health")
    async def health(request: Request):
        """Liveness plus broker readiness and cache connectivity."""
        ctx: ServiceContext = request.app.state.context
        return {
            "status": "ok",
            "brokerReady": ctx.broker_ready,
            "cacheConnected": await ctx.cache_connected(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()
