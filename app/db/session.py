import logging
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.core.config import settings
from app.db.base import Base


logger = logging.getLogger(__name__)


def engine_options(database_url: str) -> Dict[str, Any]:
    """
    Engine keyword arguments for the configured backend.

    PostgreSQL connections are checked before reuse; SQLite (local runs and
    tests) must allow the connection to cross the aiosqlite worker thread.
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


# Async database engine
engine = create_async_engine(settings.database_url, echo=False, **engine_options(settings.database_url))

# Async session factory
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency yielding one session per request.

    The user store commits its own writes; anything left uncommitted when a
    request fails is rolled back here.

    Yields:
        AsyncSession: Database session for the request lifespan.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except SQLAlchemyError:
            await session.rollback()
            raise


async def init_db():
    """
    Create the users table if it does not exist.

    Called from the application lifespan on startup.
    """
    # Register models on the metadata before create_all
    import app.models.user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready ({engine.url.get_backend_name()})")


async def close_db():
    """Release pooled connections on shutdown."""
    await engine.dispose()
