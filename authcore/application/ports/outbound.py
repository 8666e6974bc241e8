# authcore/application/ports/outbound.py

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from authcore.domain.models.session_domain_model import Session, SessionWithUser
from authcore.domain.models.user_domain_model import User


class IUserRepository(ABC):
    """User store as seen by the session core."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        pass

    @abstractmethod
    async def update_lockout(
            self,
            user_id: str,
            login_attempts: int,
            is_locked: bool,
            lock_until: Optional[datetime],
    ) -> None:
        """Persist failed-login bookkeeping fields."""
        pass


class ISessionRepository(ABC):
    """Session table interface."""

    @abstractmethod
    async def find_by_access_token(self, token: str) -> Optional[SessionWithUser]:
        """Find the session whose current access token is ``token``."""
        pass

    @abstractmethod
    async def find_by_refresh_token(self, token: str) -> Optional[SessionWithUser]:
        """Find the session whose current refresh token is ``token``."""
        pass

    @abstractmethod
    async def count_active_for_user(self, user_id: str) -> int:
        """Count sessions of the user with ``expires > now``."""
        pass

    @abstractmethod
    async def find_oldest_for_user(self, user_id: str) -> Optional[Session]:
        """Oldest live session of the user by ``created_at``."""
        pass

    @abstractmethod
    async def create(self, session: Session) -> Session:
        """Persist a new session."""
        pass

    @abstractmethod
    async def update(
            self,
            session_id: str,
            fields: Dict[str, Any],
            expected_refresh_token: Optional[str] = None,
    ) -> bool:
        """
        Update a session. When ``expected_refresh_token`` is given the row is
        only touched if it still holds that refresh token. Returns whether a
        row was updated.
        """
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Delete a session by ID."""
        pass

    @abstractmethod
    async def delete_by_access_token(self, token: str) -> Optional[Session]:
        """Delete the session owning ``token`` and return it."""
        pass

    @abstractmethod
    async def delete_all_for_user(self, user_id: str) -> int:
        """Delete every session of the user."""
        pass

    @abstractmethod
    async def delete_expired(self) -> int:
        """Purge sessions whose ``expires`` has passed."""
        pass


@dataclass
class Repositories:
    users: IUserRepository
    sessions: ISessionRepository


# Opens a unit of work; each call yields repositories bound to a fresh
# database session (or to the shared in-memory store).
RepositoryFactory = Callable[[], AbstractAsyncContextManager]


class IRateLimiter(ABC):
    """Sliding-window request counter keyed by client IP."""

    @abstractmethod
    async def check_rate_limit(self, client_ip: str) -> bool:
        """Return True when the request is allowed."""
        pass


class ILoginNotifier(ABC):
    """Notification sent when a new login happens."""

    @abstractmethod
    async def send_login_alert(
            self,
            email: str,
            user_agent: Optional[str],
            ip_address: Optional[str],
            session_id: str,
    ) -> None:
        pass
