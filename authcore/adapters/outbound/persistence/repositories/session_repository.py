# authcore/adapters/outbound/persistence/repositories/session_repository.py (async version)

"""
Repository for session rows.

Every method commits its own change so callers can treat each call as an
independent, retryable step.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from authcore.adapters.outbound.persistence.database import translate_store_error
from authcore.adapters.outbound.persistence.models import SessionModel
from authcore.adapters.outbound.persistence.repositories.user_repository import user_to_domain
from authcore.application.ports.outbound import ISessionRepository
from authcore.domain.models.session_domain_model import Session, SessionWithUser

UPDATABLE_FIELDS = frozenset({"session_token", "refresh_token", "expires", "last_activity"})


def session_to_domain(row: SessionModel) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        session_token=row.session_token,
        refresh_token=row.refresh_token,
        expires=row.expires,
        last_activity=row.last_activity,
        created_at=row.created_at,
        user_agent=row.user_agent,
        ip_address=row.ip_address,
    )


class AsyncSessionRepository(ISessionRepository):
    """
    SQLAlchemy implementation of :class:`ISessionRepository`.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logging.getLogger(__name__)

    async def _find_one(self, *criteria) -> Optional[SessionWithUser]:
        result = await self.db.execute(select(SessionModel).where(*criteria))
        row = result.unique().scalar_one_or_none()
        if row is None or row.user is None:
            return None
        return SessionWithUser(session=session_to_domain(row), user=user_to_domain(row.user))

    async def find_by_access_token(self, token: str) -> Optional[SessionWithUser]:
        try:
            return await self._find_one(SessionModel.session_token == token)
        except (SQLAlchemyError, OSError) as e:
            self.logger.error(f"Error fetching session by access token: {e}")
            raise translate_store_error(e, "Error fetching session")

    async def find_by_refresh_token(self, token: str) -> Optional[SessionWithUser]:
        try:
            return await self._find_one(SessionModel.refresh_token == token)
        except (SQLAlchemyError, OSError) as e:
            self.logger.error(f"Error fetching session by refresh token: {e}")
            raise translate_store_error(e, "Error fetching session")

    async def count_active_for_user(self, user_id: str) -> int:
        try:
            query = (
                select(func.count())
                .select_from(SessionModel)
                .where(SessionModel.user_id == user_id, SessionModel.expires > datetime.now(timezone.utc))
            )
            result = await self.db.execute(query)
            return int(result.scalar_one())
        except (SQLAlchemyError, OSError) as e:
            self.logger.error(f"Error counting sessions of user '{user_id}': {e}")
            raise translate_store_error(e, "Error counting active sessions")

    async def find_oldest_for_user(self, user_id: str) -> Optional[Session]:
        try:
            query = (
                select(SessionModel)
                .where(SessionModel.user_id == user_id, SessionModel.expires > datetime.now(timezone.utc))
                .order_by(SessionModel.created_at.asc())
                .limit(1)
            )
            result = await self.db.execute(query)
            row = result.unique().scalar_one_or_none()
            return session_to_domain(row) if row else None
        except (SQLAlchemyError, OSError) as e:
            self.logger.error(f"Error fetching oldest session of user '{user_id}': {e}")
            raise translate_store_error(e, "Error fetching oldest session")

    async def create(self, session: Session) -> Session:
        try:
            row = SessionModel(
                id=session.id,
                user_id=session.user_id,
                session_token=session.session_token,
                refresh_token=session.refresh_token,
                expires=session.expires,
                last_activity=session.last_activity,
                created_at=session.created_at,
                user_agent=session.user_agent,
                ip_address=session.ip_address,
            )
            self.db.add(row)
            await self.db.commit()
            return session
        except (SQLAlchemyError, OSError) as e:
            await self.db.rollback()
            self.logger.error(f"Error creating session for user '{session.user_id}': {e}")
            raise translate_store_error(e, "Error creating session")

    async def update(
            self,
            session_id: str,
            fields: Dict[str, Any],
            expected_refresh_token: Optional[str] = None,
    ) -> bool:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Session fields cannot be updated: {sorted(unknown)}")

        try:
            query = update(SessionModel).where(SessionModel.id == session_id)
            if expected_refresh_token is not None:
                query = query.where(SessionModel.refresh_token == expected_refresh_token)
            result = await self.db.execute(query.values(**fields))
            await self.db.commit()
            return result.rowcount > 0
        except (SQLAlchemyError, OSError) as e:
            await self.db.rollback()
            self.logger.error(f"Error updating session '{session_id}': {e}")
            raise translate_store_error(e, "Error updating session")

    async def delete(self, session_id: str) -> None:
        try:
            await self.db.execute(delete(SessionModel).where(SessionModel.id == session_id))
            await self.db.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.db.rollback()
            self.logger.error(f"Error deleting session '{session_id}': {e}")
            raise translate_store_error(e, "Error deleting session")

    async def delete_by_access_token(self, token: str) -> Optional[Session]:
        try:
            result = await self.db.execute(select(SessionModel).where(SessionModel.session_token == token))
            row = result.unique().scalar_one_or_none()
            if row is None:
                return None
            session = session_to_domain(row)
            await self.db.execute(delete(SessionModel).where(SessionModel.id == row.id))
            await self.db.commit()
            return session
        except (SQLAlchemyError, OSError) as e:
            await self.db.rollback()
            self.logger.error(f"Error deleting session by access token: {e}")
            raise translate_store_error(e, "Error deleting session")

    async def delete_all_for_user(self, user_id: str) -> int:
        try:
            result = await self.db.execute(delete(SessionModel).where(SessionModel.user_id == user_id))
            await self.db.commit()
            return result.rowcount or 0
        except (SQLAlchemyError, OSError) as e:
            await self.db.rollback()
            self.logger.error(f"Error deleting sessions of user '{user_id}': {e}")
            raise translate_store_error(e, "Error deleting user sessions")

    async def delete_expired(self) -> int:
        try:
            result = await self.db.execute(
                delete(SessionModel).where(SessionModel.expires < datetime.now(timezone.utc))
            )
            await self.db.commit()
            return result.rowcount or 0
        except (SQLAlchemyError, OSError) as e:
            await self.db.rollback()
            self.logger.error(f"Error purging expired sessions: {e}")
            raise translate_store_error(e, "Error purging expired sessions")
