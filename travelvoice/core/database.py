"""
Database configuration and utilities.
"""
from typing import Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine
)
from sqlalchemy import text
import logging

from travelvoice.core.config import settings

logger = logging.getLogger(__name__)


def _engine_options() -> Dict[str, Any]:
    if settings.is_sqlite:
        return {"echo": settings.DEBUG}
    return {
        "echo": settings.DEBUG,
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_recycle": settings.DATABASE_POOL_RECYCLE,
        "pool_pre_ping": True,  # Verify connections before using
        "connect_args": {
            "server_settings": {
                "jit": "off",
                "statement_timeout": "30000"  # 30 second timeout
            }
        },
    }


# Create async engine
engine: AsyncEngine = create_async_engine(settings.DATABASE_URL, **_engine_options())

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.
    Yields an async session and commits it once the request handler returns.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {str(e)}")
            raise
        finally:
            await session.close()

async def init_db() -> None:
    """
    Initialize database by creating all tables.
    Should be called on application startup.
    """
    from travelvoice.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

async def close_db() -> None:
    """
    Close database connections.
    Should be called on application shutdown.
    """
    await engine.dispose()
    logger.info("Database connections closed")

async def health_check(session: AsyncSession) -> Dict[str, Any]:
    """Run a trivial query and report the outcome."""
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        return {"status": "unhealthy", "error": str(e)}
