"""
SQLAlchemy engine and session factory.

Both the API and the dispatcher are asyncio programs, so a single async
engine (asyncpg driver) serves them. The dispatcher never touches the
database from a pool thread: CPU work goes to the transform pool and all
persistence stays on the event loop.

JSON_TYPE is plain JSON everywhere except PostgreSQL, where it becomes
JSONB. Tests run the same models against SQLite.
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config.settings import settings


JSON_TYPE = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models. SQLAlchemy uses this to track table metadata."""
    pass


async_engine = create_async_engine(settings.database_url, echo=False)
AsyncSessionLocal = async_sessionmaker(async_engine, expire_on_commit=False)
