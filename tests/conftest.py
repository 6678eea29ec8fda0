"""
Shared fixtures: an in-memory database, fake Redis/broker/SMTP doubles and
an httpx client bound to the app.
"""
import asyncio
import time

import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from notifyhub.config import Settings
from notifyhub.database import build_session_factory
from notifyhub.errors import BrokerNotReadyError
from notifyhub.main import create_app
from notifyhub.models.base import Base
from notifyhub.models.dead_letter import DeadLetterEntry  # noqa: F401
from notifyhub.models.outbox import OutboxEntry  # noqa: F401
from notifyhub.models.request import NotificationRequest, RequestStatus
from notifyhub.models.template import Template
from notifyhub.services.context import ServiceContext


class FakeRedis:
    """The subset of redis.asyncio used by the rate limiter and template cache."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.expiry: dict[str, float] = {}
        self.now = time.monotonic()
        self.down = False

    def _check(self):
        if self.down:
            raise RedisConnectionError("redis unavailable")

    def _expire_keys(self):
        for key, deadline in list(self.expiry.items()):
            if deadline <= self.now:
                self.store.pop(key, None)
                self.expiry.pop(key, None)

    def advance(self, seconds: float):
        self.now += seconds

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        self._expire_keys()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        if ex:
            self.expiry[key] = self.now + ex
        return True

    async def incr(self, key):
        self._check()
        self._expire_keys()
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def expire(self, key, seconds):
        self._check()
        self.expiry[key] = self.now + seconds
        return True

    async def ttl(self, key):
        self._check()
        self._expire_keys()
        if key not in self.store:
            return -2
        if key not in self.expiry:
            return -1
        return int(self.expiry[key] - self.now)

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def aclose(self):
        pass


class FakeBroker:
    """Records published messages instead of talking to Kafka."""

    def __init__(self, ready: bool = True):
        self._ready = ready
        self.published: list[tuple[str, object]] = []
        self.fail: Exception | None = None
        # Set `hold` to park publishers until it fires; `entered` marks the first arrival
        self.hold: asyncio.Event | None = None
        self.entered = asyncio.Event()

    @property
    def ready(self) -> bool:
        return self._ready

    async def start(self):
        self._ready = True

    async def stop(self):
        self._ready = False

    async def publish_batch(self, topic, messages):
        if not self._ready:
            raise BrokerNotReadyError()
        if self.fail is not None:
            raise self.fail
        if self.hold is not None:
            self.entered.set()
            await self.hold.wait()
        self.published.extend((topic, m) for m in messages)

    async def publish(self, topic, message):
        await self.publish_batch(topic, [message])

    def messages(self, topic=None):
        return [m for t, m in self.published if topic is None or t == topic]


class FakeGateway:
    """Email gateway double; set ``error`` or ``delay`` to simulate trouble."""

    def __init__(self):
        self.sent: list[dict] = []
        self.error: Exception | None = None
        self.delay: float = 0

    async def send(self, to, subject, html):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "html": html})
        return f"<msg-{len(self.sent)}@test>"

    async def verify(self):
        return True


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        LOG_SERVER_URL=None,
        SENTRY_DSN=None,
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
async def context(settings, engine, session_factory, broker, fake_redis):
    ctx = ServiceContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        broker=broker,
        redis_client=fake_redis,
    )
    await ctx.start()
    return ctx


@pytest.fixture
def app(context):
    return create_app(context)


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_template(session_factory):
    async def _make(name="Welcome", subject="Hello {{user_name}}", html_content="<p>Code {{code}}</p>"):
        async with session_factory() as db:
            template = Template(name=name, subject=subject, html_content=html_content, variables=[])
            db.add(template)
            await db.commit()
            await db.refresh(template)
            return template
    return _make


@pytest.fixture
def make_request(session_factory):
    async def _make(template_id, data=None, user_email="ada@example.com",
                    user_name="Ada", status=RequestStatus.PENDING):
        async with session_factory() as db:
            request = NotificationRequest(
                user_name=user_name,
                user_email=user_email,
                template_id=template_id,
                data=data if data is not None else {},
                status=status,
            )
            db.add(request)
            await db.commit()
            await db.refresh(request)
            return request
    return _make
