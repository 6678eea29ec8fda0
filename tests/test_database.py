"""
Engine configuration tests.
"""
from notifyhub.config import Settings
from notifyhub.database import build_engine, engine_options

POSTGRES_URL = "postgresql+asyncpg://user:pass@db:5432/notifyhub"


def test_asyncpg_engine_gets_a_command_timeout():
    settings = Settings(DATABASE_URL=POSTGRES_URL, DB_COMMAND_TIMEOUT=12.5)

    options = engine_options(POSTGRES_URL, settings)

    assert options["connect_args"] == {"command_timeout": 12.5}
    assert options["pool_size"] == settings.DB_POOL_SIZE
    assert options["pool_pre_ping"] is True


def test_sqlite_engine_takes_no_pool_options():
    assert engine_options("sqlite+aiosqlite://", Settings()) == {}


async def test_build_engine_does_not_connect():
    settings = Settings(DATABASE_URL=POSTGRES_URL)
    engine = build_engine(POSTGRES_URL, settings)
    try:
        assert engine.dialect.driver == "asyncpg"
        assert engine.pool.size() == settings.DB_POOL_SIZE
    finally:
        await engine.dispose()
