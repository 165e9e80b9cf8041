"""
Database Session Management

Async SQLAlchemy engine and session factory for the thread store.

Usage:
    from src.database.session import get_db_session, init_db

    # Initialize on startup
    await init_db()

    # Use in async context
    async with get_db_session() as session:
        row = await session.get(ConversationThread, user_id)
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.config.logging_config import get_logger
from src.config.settings import get_settings
from src.database.models import Base

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker] = None


def create_engine_for(database_url: str) -> AsyncEngine:
    """
    Build an async engine for the given URL.

    SQLite files get their parent directory created; in-memory SQLite shares a
    single connection so every session sees the same tables. Server databases
    (postgresql+asyncpg) get a small pre-pinged pool.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            db_dir = os.path.dirname(url.database)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            return create_async_engine(database_url, echo=False)
        return create_async_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_async_engine(
        database_url,
        echo=False,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,  # Test connections before use
        pool_recycle=3600,
    )


def get_engine() -> AsyncEngine:
    """Get (or lazily create) the process-wide engine from settings."""
    global _engine
    if _engine is None:
        _engine = create_engine_for(get_settings().database_url)
    return _engine


def get_sessionmaker() -> async_sessionmaker:
    """Get the async session factory bound to the process-wide engine."""
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,  # Don't expire objects after commit
            autoflush=False,
        )
    return _sessionmaker


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """
    Initialize database schema.

    Creates the threads table if it doesn't exist. Called on bot startup.
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("🥝 Table 'threads' ensured to exist.")


async def dispose_db() -> None:
    """Close every pooled connection (on shutdown)."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
        logger.info("🥝 Database connection closed.")
    _engine = None
    _sessionmaker = None


@asynccontextmanager
async def get_db_session(factory: Optional[async_sessionmaker] = None) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    Yields:
        AsyncSession: SQLAlchemy async session

    Automatically commits on success, rolls back on exception.
    """
    session = (factory or get_sessionmaker())()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()

