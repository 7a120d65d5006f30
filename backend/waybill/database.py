"""Database engine, session factory, and declarative base.

One DeclarativeBase (`Base`) holds every table.  Tenancy is row-based:
each table owned by the dispatch service carries a `tenant_id` column and
every query filters on it.

Session dependency for FastAPI:
  - get_db()  → one transaction per request; commit on success, rollback on error
"""

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from waybill.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Declarative base for all Waybill models."""
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ── Session dependency ──────────────────────────────────────

async def get_db() -> AsyncSession:
    """Yield a session whose transaction spans the whole request."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
