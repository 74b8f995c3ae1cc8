"""Database connection ownership, session management, and health checks."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import settings
from .exceptions import DatabaseUnavailableError
from .logger import logger

# Base class for ORM models
Base = declarative_base()


def _normalize_url(url: str) -> str:
    """Route bare postgresql:// URLs through the asyncpg driver."""
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def _engine_options(url: str) -> dict:
    """Pool and driver options for the configured backend."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,  # Verify connections before use
        "connect_args": {
            "timeout": settings.DB_CONNECT_TIMEOUT,
            "command_timeout": settings.DB_QUERY_TIMEOUT,
        },
    }


# ==================== Connection Owner ====================


class Database:
    """Owns the engine and session factory, created on first use.

    ``acquire()`` is the only way to get at the connection pool. The first
    caller starts one establishment attempt and every caller that arrives while
    it is in flight awaits that same attempt. A failed attempt is reported to
    all of its waiters and then forgotten, so the next request starts fresh.
    """

    def __init__(self, url: str | None = None, **engine_options):
        self.url = _normalize_url(url or settings.DB_URL)
        self.engine_options = engine_options or _engine_options(self.url)
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._pending: asyncio.Future | None = None

    @property
    def is_connected(self) -> bool:
        return self._session_factory is not None

    async def acquire(self) -> async_sessionmaker[AsyncSession]:
        """Return the session factory, establishing the connection pool if needed.

        Raises:
            DatabaseUnavailableError: the establishment attempt failed
        """
        if self._session_factory is not None:
            return self._session_factory

        # No await between the check and the assignment: on a single event
        # loop this is the only place an attempt can be started.
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._establish())
        pending = self._pending

        # Shielded so one cancelled request does not abort the attempt for the others
        return await asyncio.shield(pending)

    async def _establish(self) -> async_sessionmaker[AsyncSession]:
        logger.info("Establishing database connection pool")
        engine = create_async_engine(self.url, echo=False, **self.engine_options)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            self._pending = None
            await engine.dispose()
            logger.error(f"Database connection failed: {e}", exc_info=True)
            raise DatabaseUnavailableError("Failed to connect to the database") from e

        self._engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        logger.info(
            f"Database engine ready: pool_size={self.engine_options.get('pool_size', 'default')}, "
            f"max_overflow={self.engine_options.get('max_overflow', 'default')}"
        )
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Open a session from the shared pool."""
        factory = await self.acquire()
        async with factory() as session:
            yield session

    async def create_all(self) -> None:
        """Create all tables (tests and DB_CREATE_TABLES; production uses Alembic)."""
        await self.acquire()
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        await self.acquire()
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def check_connection(self) -> bool:
        """Check if database connection is healthy.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {str(e)}")
            return False

    async def dispose(self) -> None:
        """Gracefully close all database connections.

        Called during application shutdown. The next ``acquire()`` after this
        builds a new pool. An attempt still in flight is awaited first so its
        engine is disposed here rather than left behind.
        """
        pending = self._pending
        if pending is not None:
            # Failures were already logged by the attempt itself
            await asyncio.wait({pending})

        engine = self._engine
        self._engine = None
        self._session_factory = None
        self._pending = None
        if engine is None:
            return
        logger.info("Disposing database engine and closing connections")
        try:
            await engine.dispose()
            logger.info("Database connections closed successfully")
        except Exception as e:
            logger.error(f"Error disposing database engine: {str(e)}", exc_info=True)


database = Database()


async def check_db_connection() -> bool:
    return await database.check_connection()


async def dispose_engine() -> None:
    await database.dispose()
