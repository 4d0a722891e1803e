"""
Table creation.

Importing every model module here registers it on Base.metadata, so
create_all() sees the full schema no matter which entry point calls it.
Safe to call repeatedly — existing tables are left alone.
"""

from sqlalchemy.ext.asyncio import AsyncEngine

from models.base import Base
from models import category, job, media, notification, ticket  # noqa: F401


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
