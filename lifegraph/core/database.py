"""Async SQLAlchemy engine, session factory and database client.

This module centralizes the async session dependency in the core layer so it
can be reused by the HTTP layer and by the background extraction queue.
"""

from collections.abc import AsyncGenerator
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from lifegraph.core.config import settings
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool and driver options for the configured backend."""
    if url.startswith("sqlite"):
        # SQLite (local runs and tests) uses SQLAlchemy's default pool
        return {"echo": settings.database_echo, "future": True}

    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "echo": settings.database_echo,
        "future": True,
        # Disable prepared statement cache for PgBouncer compatibility
        "connect_args": {"statement_cache_size": 0},
    }


# Create async engine
engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# Create async session factory
async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for getting async database session.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


class DatabaseClient:
    """Connectivity checks and schema bootstrap for the graph tables."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def connect(self) -> None:
        """Round-trip a ``SELECT 1``; raises if the database is unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        LOGGER.info("Database connection successful", extra={"database": self.engine.dialect.name})

    async def create_tables(self) -> None:
        """Create the entity, mention and relationship tables if missing."""
        # Register models on the metadata
        from lifegraph.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        LOGGER.info("Memory graph tables created/verified")

    async def disconnect(self) -> None:
        await self.engine.dispose()
        LOGGER.info("Database connection closed")

    async def health_check(self) -> Dict[str, Any]:
        """Report database reachability for the health endpoint."""
        try:
            async with self.engine.connect() as conn:
                val = await conn.scalar(text("SELECT 1"))
        except Exception as e:
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "connected": False, "error": str(e)}

        return {
            "status": "healthy" if val == 1 else "degraded",
            "connected": True,
            "database": self.engine.dialect.name,
        }


db_client = DatabaseClient(engine)


async def init_database(create_schema: bool = True) -> None:
    """Check connectivity and create any missing graph tables.

    Alembic owns schema changes in deployed environments; ``create_schema``
    only fills in tables that do not exist yet.
    """
    LOGGER.info("Initializing database connection...")
    try:
        await db_client.connect()
        if create_schema:
            await db_client.create_tables()
    except Exception as e:
        LOGGER.error("Database initialization failed", exc_info=True, extra={"error": str(e)})
        raise
    LOGGER.info("Database initialization completed")


async def close_database() -> None:
    """Dispose the engine; errors are logged so shutdown can finish."""
    try:
        await db_client.disconnect()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})
