# authcore/adapters/outbound/persistence/repositories/__init__.py

"""
SQLAlchemy repositories and the factory that binds them to a database session.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from authcore.adapters.outbound.persistence.database import get_db_context
from authcore.adapters.outbound.persistence.repositories.session_repository import AsyncSessionRepository
from authcore.adapters.outbound.persistence.repositories.user_repository import AsyncUserRepository
from authcore.application.ports.outbound import Repositories


@asynccontextmanager
async def open_database_repositories() -> AsyncIterator[Repositories]:
    """Yield repositories sharing one database session (one unit of work)."""
    async with get_db_context() as db:
        yield Repositories(users=AsyncUserRepository(db), sessions=AsyncSessionRepository(db))


__all__ = [
    "AsyncSessionRepository",
    "AsyncUserRepository",
    "open_database_repositories",
]
