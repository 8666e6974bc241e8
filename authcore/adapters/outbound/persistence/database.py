# authcore/adapters/outbound/persistence/database.py (async version)

import logging
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import declarative_base

from authcore.adapters.configuration.config import settings
from authcore.domain.exceptions import DatabaseOperationException, StoreUnavailableError

# Configure logger
logger = logging.getLogger(__name__)

# ─── Base definition ──────────────────────────────────────────────────────────
# Parent class of every ORM model, owns the metadata
Base = declarative_base()
# ────────────────────────────────────────────────────────────────────────────────

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def async_database_url() -> str:
    """Database URL with the sync driver swapped for asyncpg."""
    return str(settings.DATABASE_URL).replace("postgresql+psycopg2", "postgresql+asyncpg")


def get_engine() -> AsyncEngine:
    """
    Create the async engine on first use.

    Deferred so that running with ``STORE_BACKEND=memory`` never loads the
    PostgreSQL driver.
    """
    global _engine, _session_factory
    if _engine is None:
        database_url = async_database_url()
        logger.info(f"Connecting to database: {database_url.split('@')[-1]}")
        try:
            _engine = create_async_engine(
                database_url,
                echo=False,
                pool_size=20,
                max_overflow=10,
                pool_timeout=30,
                pool_recycle=1800,
                pool_pre_ping=True
            )
            _session_factory = async_sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=_engine,
                expire_on_commit=False,
            )
            logger.info("Async database connection configured successfully")
        except SQLAlchemyError as e:
            logger.error(f"Error connecting to database: {str(e)}")
            raise
    return _engine


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Provides an async context for database operations,
    ensuring the session is closed at the end.

    Yields:
        AsyncSession: SQLAlchemy async session

    Example:
        ```python
        async with get_db_context() as db:
            result = await db.execute(select(SessionModel))
        ```
    """
    get_engine()
    session = _session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


def is_connection_error(error: BaseException) -> bool:
    """True for errors meaning the database could not be reached."""
    if isinstance(error, (OperationalError, InterfaceError, OSError)):
        return True
    return isinstance(error, DBAPIError) and bool(error.connection_invalidated)


def translate_store_error(error: BaseException, detail: str) -> DatabaseOperationException:
    """Map a driver/ORM error to the store exceptions of the domain."""
    if is_connection_error(error):
        return StoreUnavailableError(original_error=error)
    return DatabaseOperationException(detail=detail, original_error=error)
