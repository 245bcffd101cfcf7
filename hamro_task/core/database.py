"""
Database configuration and session management.

This module provides:
- Async SQLAlchemy engine setup
- Database session management
- Database dependency injection
"""

from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from hamro_task.core.config import get_settings
from hamro_task.core.logger import get_logger
from hamro_task.core.models import Base

logger = get_logger(__name__)
settings = get_settings()


class DatabaseManager:
    """Manages database connections and sessions."""

    def __init__(self, database_url: Optional[str] = None) -> None:
        self._database_url = database_url or settings.database_url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        """Get the database engine, creating it if necessary."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get the session factory, creating it if necessary."""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._session_factory

    def _create_engine(self) -> AsyncEngine:
        """Create and configure the async database engine."""
        engine_kwargs: Dict[str, Any] = {
            "url": self._database_url,
            "echo": settings.debug,
            "pool_pre_ping": True,
        }
        # SQLite (tests, local tooling) runs on a single connection pool
        if not self._database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_timeout=30,
                pool_recycle=3600,
            )

        engine = create_async_engine(**engine_kwargs)

        @event.listens_for(engine.sync_engine, "checkout")
        def receive_checkout(dbapi_connection, connection_record, connection_proxy):
            if settings.is_development:
                logger.debug("Database connection checked out")

        logger.info(
            "Database engine created",
            database_url=self._database_url.split("@")[-1],  # Hide credentials
        )

        return engine

    async def create_tables(self) -> None:
        """Create all database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def close(self) -> None:
        """Close the database engine and all connections."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine closed")

    async def health_check(self) -> bool:
        """Check if the database is accessible."""
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False


# Global database manager instance
db_manager = DatabaseManager()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get a database session.

    The session is committed when the request handler returns and rolled
    back if it raises.

    Yields:
        AsyncSession: Database session for the request
    """
    async with db_manager.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error("Database session rolled back", error=str(e))
            raise


def get_db_session_context() -> AsyncSession:
    """
    Get a database session for use outside request handling.

    Example:
        async with get_db_session_context() as db:
            result = await db.execute(select(Task))
    """
    return db_manager.session_factory()


async def close_db() -> None:
    """Close database connections."""
    await db_manager.close()
