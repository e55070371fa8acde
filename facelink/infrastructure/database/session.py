"""Database session management."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)

from facelink.core.config import settings
from facelink.core.logging import get_logger
from facelink.infrastructure.database.models import Base

logger = get_logger(__name__)


def create_engine(url: Optional[str] = None) -> AsyncEngine:
    """Create the async engine for `url` (defaults to settings.DATABASE_URL)."""
    return create_async_engine(url or settings.DATABASE_URL, echo=settings.DEBUG)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create missing tables."""
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_db_session(factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Yields:
        AsyncSession: Database session

    Example:
        ```python
        async with get_db_session(factory) as session:
            await session.execute(query)
            await session.commit()
        ```
    """
    session = factory()
    logger.debug("Creating new database session")
    try:
        yield session
    except Exception as e:
        logger.error(
            "Database session error",
            error=str(e),
            exc_info=True
        )
        await session.rollback()
        raise
    finally:
        logger.debug("Closing database session")
        await session.close()
