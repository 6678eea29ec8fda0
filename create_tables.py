"""
Script to create all database tables.

This script creates all tables defined in the models.
Run this after starting PostgreSQL with Docker.
"""
import asyncio
import sys

from notifyhub.config import settings
from notifyhub.database import build_engine
from notifyhub.models.base import Base
# Import all models to register them with Base
from notifyhub.models.template import Template  # noqa: F401
from notifyhub.models.request import NotificationRequest, NotificationLog  # noqa: F401
from notifyhub.models.dead_letter import DeadLetterEntry  # noqa: F401
from notifyhub.models.outbox import OutboxEntry  # noqa: F401


async def create_all_tables(engine):
    """Create all tables in the database."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("All tables created successfully!")


async def drop_all_tables(engine):
    """Drop all tables in the database (for testing)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    print("All tables dropped!")


async def main(drop: bool = False):
    """Main entry point."""
    engine = build_engine(settings.DATABASE_URL, settings)
    try:
        if drop:
            print("Dropping database tables...")
            await drop_all_tables(engine)
        print("Creating database tables...")
        await create_all_tables(engine)
    finally:
        await engine.dispose()
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main(drop="--drop" in sys.argv))
