# authcore/adapters/outbound/persistence/repositories/user_repository.py (async version)

"""
Repository for the user columns the session core depends on.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from authcore.adapters.outbound.persistence.database import translate_store_error
from authcore.adapters.outbound.persistence.models import UserModel
from authcore.application.ports.outbound import IUserRepository
from authcore.domain.models.user_domain_model import User, UserRole


def user_to_domain(row: UserModel) -> User:
    return User(
        id=row.id,
        email=row.email,
        role=UserRole(row.role),
        password=row.password,
        is_email_verified=bool(row.is_email_verified),
        is_locked=bool(row.is_locked),
        lock_until=row.lock_until,
        login_attempts=row.login_attempts or 0,
        username=row.username,
        name=row.name,
        created_at=row.created_at,
    )


class AsyncUserRepository(IUserRepository):
    """
    SQLAlchemy implementation of :class:`IUserRepository`.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logging.getLogger(__name__)

    async def get(self, user_id: str) -> Optional[User]:
        """
        Find a user by ID.

        Raises:
            StoreUnavailableError: Database unreachable
            DatabaseOperationException: Any other database error
        """
        try:
            result = await self.db.execute(select(UserModel).where(UserModel.id == str(user_id)))
            row = result.unique().scalar_one_or_none()
            return user_to_domain(row) if row else None
        except (SQLAlchemyError, OSError) as e:
            self.logger.error(f"Error fetching user '{user_id}': {e}")
            raise translate_store_error(e, "Error fetching user")

    async def get_by_email(self, email: str) -> Optional[User]:
        try:
            result = await self.db.execute(select(UserModel).where(UserModel.email == email))
            row = result.unique().scalar_one_or_none()
            return user_to_domain(row) if row else None
        except (SQLAlchemyError, OSError) as e:
            self.logger.error(f"Error fetching user by email: {e}")
            raise translate_store_error(e, "Error fetching user by email")

    async def update_lockout(
            self,
            user_id: str,
            login_attempts: int,
            is_locked: bool,
            lock_until: Optional[datetime],
    ) -> None:
        try:
            await self.db.execute(
                update(UserModel)
                .where(UserModel.id == str(user_id))
                .values(login_attempts=login_attempts, is_locked=is_locked, lock_until=lock_until)
            )
            await self.db.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.db.rollback()
            self.logger.error(f"Error updating lockout fields of user '{user_id}': {e}")
            raise translate_store_error(e, "Error updating user lockout state")
