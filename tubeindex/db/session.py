"""
Database engine and session management.

Nothing here is created at import time. Callers build an engine and a
session factory once (see ``tubeindex.services.factory``) and pass the
factory to the components that need persistence:

    engine = create_engine()
    store = SqlAlchemyIndexStore(create_session_factory(engine))
    ...
    await close_db(engine)
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from tubeindex.core.config import Settings, settings as default_settings
from tubeindex.core.logging import get_logger

logger = get_logger(__name__)


# ================================
# Database Engine Configuration
# ================================

def get_engine_config(config_settings: Optional[Settings] = None) -> dict[str, Any]:
    """
    Configure the database engine based on environment.

    Pool Types:
    -----------
    1. AsyncAdaptedQueuePool (development/production):
       - Maintains pool_size connections open
       - Can create max_overflow extra connections if needed
    2. NullPool (staging/tests):
       - Creates a new connection for each checkout
       - Best for isolation

    Indexing runs issue many small concurrent writes (3 videos x 10 chunks
    in flight), so the pool must be at least that wide.
    """
    cfg = config_settings or default_settings

    config: dict[str, Any] = {
        "echo": cfg.DB_ECHO,
        # Test connection health before using
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {
            "server_settings": {
                "application_name": cfg.APP_NAME,
            }
        },
    }

    if cfg.is_development or cfg.is_production:
        logger.info(
            "configuring_database_engine",
            environment=cfg.APP_ENV,
            pool_size=cfg.DB_POOL_SIZE,
            max_overflow=cfg.DB_MAX_OVERFLOW,
        )
        config.update({
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": cfg.DB_POOL_SIZE,
            "max_overflow": cfg.DB_MAX_OVERFLOW,
            "pool_timeout": 30,
        })
        if cfg.is_production:
            config["pool_recycle"] = 7200

    else:
        logger.info(
            "configuring_database_engine",
            environment=cfg.APP_ENV,
            pool_type="NullPool",
        )
        config.update({
            "poolclass": NullPool,
        })

    return config


def create_engine(
    database_url: Optional[str] = None,
    config_settings: Optional[Settings] = None,
) -> AsyncEngine:
    """
    Create the async database engine.

    Args:
        database_url: Override for settings.DATABASE_URL
        config_settings: Settings instance (default: global settings)

    Returns:
        AsyncEngine: The database engine instance
    """
    cfg = config_settings or default_settings
    engine_config = get_engine_config(cfg)

    engine = create_async_engine(
        database_url or cfg.DATABASE_URL,
        **engine_config
    )

    logger.info(
        "database_engine_created",
        driver="asyncpg",
        pool_size=engine_config.get("pool_size", "NullPool"),
    )

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build the session factory handed to persistence components.

    expire_on_commit=False keeps ORM objects readable after the session
    that loaded them has been closed.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """
    Yield a session that is rolled back if the caller raises.

    Yields:
        AsyncSession: A database session
    """
    async with session_factory() as session:
        try:
            yield session
        except Exception as e:
            logger.error(
                "database_session_error",
                error=str(e),
                error_type=type(e).__name__,
            )
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine, create_tables: bool = False) -> None:
    """
    Verify connectivity and, for local development, create the schema.

    Production deployments use Alembic migrations instead.
    """
    logger.info("initializing_database")

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

        logger.info("database_connection_successful")

        if create_tables:
            from tubeindex.db.base import Base
            import tubeindex.models  # noqa: F401  (register models)

            async with engine.begin() as conn:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                await conn.run_sync(Base.metadata.create_all)

            logger.info("database_tables_created")

    except Exception as e:
        logger.error(
            "database_initialization_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise


async def close_db(engine: AsyncEngine) -> None:
    """Dispose of the engine's connection pool."""
    logger.info("closing_database_connections")

    try:
        await engine.dispose()
        logger.info("database_connections_closed")

    except Exception as e:
        logger.error(
            "database_closure_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        # Shutdown continues


# ================================
# Database Health Check
# ================================

async def check_db_health(engine: AsyncEngine) -> bool:
    """
    Check if the database is healthy and responsive.

    Returns:
        bool: True if database is healthy, False otherwise
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        return False
