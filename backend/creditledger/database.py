"""
Engine and session factory for the ledger store.

PostgreSQL (asyncpg) in production. SQLite (aiosqlite) is supported for local
runs and tests; there the file lock serializes writers, so connections get a
busy timeout instead of a pool size.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from creditledger.config import settings
from creditledger.models.base import Base

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"timeout": settings.sqlite_busy_timeout_seconds}}
    return {
        "pool_pre_ping": True,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
    }


engine = create_async_engine(
    settings.database_url,
    echo=False,
    **_engine_options(settings.database_url),
)

# Ledger units of work open their own sessions from this factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncSession:
    """
    Request-scoped session for auth lookups and the health check.
    Usage: db: AsyncSession = Depends(get_db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create the users and credit_transactions tables if missing."""
    from creditledger.models import user, credit_transaction  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Ledger tables ready", extra={"event": "db_ready"})
