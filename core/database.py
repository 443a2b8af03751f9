"""
Database session management with SQLAlchemy async
"""

from functools import lru_cache
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import settings
from models.base import Base
import logging

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Create the async engine on first use"""
    return create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        poolclass=NullPool,  # Short-lived CLI runs, no pool to keep warm
        future=True
    )


def get_session_maker(engine: AsyncEngine = None) -> async_sessionmaker:
    """Session factory bound to the given engine (default: application engine)"""
    return async_sessionmaker(
        engine or get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session"""
    async with get_session_maker()() as session:
        yield session


async def init_models(engine: AsyncEngine = None):
    """Create all tables declared on Base.metadata"""
    # Import for side effects: registers every table on Base.metadata
    import models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
