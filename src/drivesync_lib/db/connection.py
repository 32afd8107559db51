"""
Async database connection management.

Wraps the SQLAlchemy async engine and session factory used by every
service. Instances are created explicitly at startup and handed to the
components that need them.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger("drivesync-lib.db")


class Base(DeclarativeBase):
    """Declarative base for all DriveSync ORM models."""


class DatabaseManager:
    """
    Owns the async engine and session factory.

    Usage:
        db = DatabaseManager("postgresql+asyncpg://...")
        async with db.session() as session:
            ...
    """

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy async connection URL.
            echo: Log all SQL statements.
        """
        self._engine: AsyncEngine = create_async_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
        )
        self._session_factory = async_sessionmaker(
            self._engine,
            expire_on_commit=False,
        )

    @property
    def engine(self) -> AsyncEngine:
        """Underlying async engine."""
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Factory producing new AsyncSession instances."""
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that is rolled back if the block raises."""
        async with self._session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def check_connection(self) -> None:
        """
        Run a trivial query against the database.

        Raises:
            Exception: Whatever the driver raises when the database is unreachable.
        """
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_schema(self) -> None:
        """Create all tables known to the ORM metadata if missing."""
        # Import models so they register on Base.metadata
        import drivesync_lib.db.models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        await self._engine.dispose()


async def init_db(
    database_url: str,
    echo: bool = False,
    create_schema: bool = False,
) -> DatabaseManager:
    """
    Create a database manager and verify connectivity.

    Args:
        database_url: SQLAlchemy async connection URL.
        echo: Log all SQL statements.
        create_schema: Create missing tables after connecting.

    Returns:
        Connected DatabaseManager.

    Raises:
        Exception: If the database is unreachable.
    """
    manager = DatabaseManager(database_url, echo=echo)
    try:
        await manager.check_connection()
        if create_schema:
            await manager.create_schema()
    except Exception:
        await manager.close()
        raise

    logger.info("🗄️ Database connection established")
    return manager


async def close_db(manager: DatabaseManager | None) -> None:
    """
    Close a database manager if one was created.

    Args:
        manager: Manager to close, or None.
    """
    if manager is None:
        return
    await manager.close()
    logger.info("🗄️ Database connection closed")
