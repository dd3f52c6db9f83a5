"""
Database session management.

One AsyncSession per request: repositories only flush, and the session is
committed when the handler returns or rolled back when anything raises. A
multi-step operation (reset, force-complete) is therefore all-or-nothing.
"""
import logging
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from prompt_rater.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def configure_sqlite(async_engine: AsyncEngine) -> AsyncEngine:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside the request transaction.

    Transactions start with BEGIN IMMEDIATE: the write lock is taken up front,
    so concurrent writers queue on the busy timeout instead of failing a
    read-to-write lock upgrade with "database is locked".
    """
    if async_engine.dialect.name != "sqlite":
        return async_engine

    @event.listens_for(async_engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return async_engine


# Create async engine
engine = configure_sqlite(create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
))

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for FastAPI routes."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Initialize database - create all tables."""
    from prompt_rater.infra.db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
