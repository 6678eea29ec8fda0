"""
Service context.

Holds every connection handle and readiness flag a process needs. Built
explicitly at startup, started in a fixed order (database, cache, broker
producer, broker admin, topics) and handed to routes through app.state.
"""
import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from notifyhub.config import Settings
from notifyhub.database import build_engine, build_session_factory
from notifyhub.logging_config import get_logger
from notifyhub.services.broker import KafkaBroker
from notifyhub.services.rate_limiter import RateLimiter
from notifyhub.services.template_cache import TemplateCache

log = get_logger(component="context")


class ServiceContext:
    """Dependency container for the API and the worker."""

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        session_factory: async_sessionmaker,
        broker,
        redis_client=None,
    ):
        self.settings = settings
        self.engine = engine
        self.session_factory = session_factory
        self.broker = broker
        self.redis = redis_client
        self.started = False

        self.rate_limiter = None
        self.template_cache = None
        if redis_client is not None:
            self.rate_limiter = RateLimiter(
                redis_client,
                limit=settings.RATE_LIMIT_REQUESTS,
                window=settings.RATE_LIMIT_WINDOW,
            )
            self.template_cache = TemplateCache(redis_client, ttl=settings.TEMPLATE_CACHE_TTL)

    @classmethod
    def from_settings(cls, settings: Settings, client_id: str | None = None,
                      with_cache: bool = True) -> "ServiceContext":
        engine = build_engine(settings.DATABASE_URL, settings)
        redis_client = None
        if with_cache:
            redis_client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
            )
        return cls(
            settings=settings,
            engine=engine,
            session_factory=build_session_factory(engine),
            broker=KafkaBroker.from_settings(settings, client_id=client_id),
            redis_client=redis_client,
        )

    @property
    def broker_ready(self) -> bool:
        return self.broker.ready

    async def cache_connected(self) -> bool:
        if self.redis is None:
            return False
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError):
            return False

    async def start(self) -> None:
        """
        Bring dependencies up in order.

        Database or broker failures propagate (fatal at startup). An
        unreachable cache only degrades rate limiting and caching.
        """
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        log.info("database_connected")

        if self.redis is not None:
            if await self.cache_connected():
                log.info("cache_connected")
            else:
                log.warning("cache_unavailable", detail="rate limiting fails open, caching bypassed")

        await self.broker.start()
        self.started = True

    async def stop(self) -> None:
        await self.broker.stop()
        if self.redis is not None:
            await self.redis.aclose()
        await self.engine.dispose()
        self.started = False
        log.info("service_context_stopped")
