# authcore/adapters/outbound/persistence/memory_store.py

"""
In-memory backing store.

Used with ``STORE_BACKEND=memory`` and by the test-suite. Mirrors the
constraints of the SQL schema (unique token columns, cascade on user delete)
and can simulate an unreachable database.
"""

import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from authcore.application.ports.outbound import (
    ISessionRepository,
    IUserRepository,
    Repositories,
)
from authcore.domain.exceptions import DatabaseOperationException, StoreUnavailableError
from authcore.domain.models.session_domain_model import Session, SessionWithUser
from authcore.domain.models.user_domain_model import User

UPDATABLE_FIELDS = frozenset({"session_token", "refresh_token", "expires", "last_activity"})


class MemoryStore:
    """Users and sessions kept in dictionaries, guarded by a lock."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)
        self.users: Dict[str, User] = {}
        self.sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()
        self._available = True
        self._failures_left = 0

    # ── outage simulation ────────────────────────────────────────────────────
    def set_available(self, available: bool) -> None:
        self._available = available

    def fail_next(self, count: int) -> None:
        """Make the next ``count`` store calls fail as if the database was down."""
        self._failures_left = count

    def check_available(self) -> None:
        with self._lock:
            if self._failures_left > 0:
                self._failures_left -= 1
                raise StoreUnavailableError()
        if not self._available:
            raise StoreUnavailableError()

    # ── users ────────────────────────────────────────────────────────────────
    def add_user(self, user: User) -> User:
        with self._lock:
            if any(u.email == user.email for u in self.users.values()):
                raise DatabaseOperationException(detail=f"User with email '{user.email}' already exists")
            if user.created_at is None:
                user.created_at = datetime.now(timezone.utc)
            self.users[user.id] = replace(user)
            return replace(user)

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            self.users.pop(user_id, None)
            for sid in [sid for sid, s in self.sessions.items() if s.user_id == user_id]:
                self.sessions.pop(sid, None)

    def sessions_for_user(self, user_id: str) -> List[Session]:
        with self._lock:
            return [replace(s) for s in self.sessions.values() if s.user_id == user_id]


class MemoryUserRepository(IUserRepository):

    def __init__(self, store: MemoryStore):
        self.store = store

    async def get(self, user_id: str) -> Optional[User]:
        self.store.check_available()
        with self.store._lock:
            user = self.store.users.get(str(user_id))
            return replace(user) if user else None

    async def get_by_email(self, email: str) -> Optional[User]:
        self.store.check_available()
        with self.store._lock:
            for user in self.store.users.values():
                if user.email == email:
                    return replace(user)
        return None

    async def update_lockout(
            self,
            user_id: str,
            login_attempts: int,
            is_locked: bool,
            lock_until: Optional[datetime],
    ) -> None:
        self.store.check_available()
        with self.store._lock:
            user = self.store.users.get(str(user_id))
            if user is None:
                return
            user.login_attempts = login_attempts
            user.is_locked = is_locked
            user.lock_until = lock_until


class MemorySessionRepository(ISessionRepository):

    def __init__(self, store: MemoryStore):
        self.store = store

    def _with_user(self, session: Optional[Session]) -> Optional[SessionWithUser]:
        if session is None:
            return None
        user = self.store.users.get(session.user_id)
        if user is None:
            return None
        return SessionWithUser(session=replace(session), user=replace(user))

    async def find_by_access_token(self, token: str) -> Optional[SessionWithUser]:
        self.store.check_available()
        with self.store._lock:
            match = next((s for s in self.store.sessions.values() if s.session_token == token), None)
            return self._with_user(match)

    async def find_by_refresh_token(self, token: str) -> Optional[SessionWithUser]:
        self.store.check_available()
        with self.store._lock:
            match = next((s for s in self.store.sessions.values() if s.refresh_token == token), None)
            return self._with_user(match)

    async def count_active_for_user(self, user_id: str) -> int:
        self.store.check_available()
        now = datetime.now(timezone.utc)
        with self.store._lock:
            return sum(1 for s in self.store.sessions.values() if s.user_id == user_id and s.expires > now)

    async def find_oldest_for_user(self, user_id: str) -> Optional[Session]:
        self.store.check_available()
        now = datetime.now(timezone.utc)
        with self.store._lock:
            live = [s for s in self.store.sessions.values() if s.user_id == user_id and s.expires > now]
            if not live:
                return None
            return replace(min(live, key=lambda s: s.created_at))

    async def create(self, session: Session) -> Session:
        self.store.check_available()
        with self.store._lock:
            if session.user_id not in self.store.users:
                raise DatabaseOperationException(detail=f"User '{session.user_id}' does not exist")
            for existing in self.store.sessions.values():
                if existing.session_token == session.session_token or existing.refresh_token == session.refresh_token:
                    raise DatabaseOperationException(detail="Duplicate session token")
            self.store.sessions[session.id] = replace(session)
            return replace(session)

    async def update(
            self,
            session_id: str,
            fields: Dict[str, Any],
            expected_refresh_token: Optional[str] = None,
    ) -> bool:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Session fields cannot be updated: {sorted(unknown)}")
        self.store.check_available()
        with self.store._lock:
            session = self.store.sessions.get(session_id)
            if session is None:
                return False
            if expected_refresh_token is not None and session.refresh_token != expected_refresh_token:
                return False
            self.store.sessions[session_id] = replace(session, **fields)
            return True

    async def delete(self, session_id: str) -> None:
        self.store.check_available()
        with self.store._lock:
            self.store.sessions.pop(session_id, None)

    async def delete_by_access_token(self, token: str) -> Optional[Session]:
        self.store.check_available()
        with self.store._lock:
            match = next((s for s in self.store.sessions.values() if s.session_token == token), None)
            if match is None:
                return None
            return self.store.sessions.pop(match.id)

    async def delete_all_for_user(self, user_id: str) -> int:
        self.store.check_available()
        with self.store._lock:
            doomed = [sid for sid, s in self.store.sessions.items() if s.user_id == user_id]
            for sid in doomed:
                self.store.sessions.pop(sid, None)
            return len(doomed)

    async def delete_expired(self) -> int:
        self.store.check_available()
        now = datetime.now(timezone.utc)
        with self.store._lock:
            doomed = [sid for sid, s in self.store.sessions.items() if s.expires < now]
            for sid in doomed:
                self.store.sessions.pop(sid, None)
            return len(doomed)


def memory_repository_factory(store: MemoryStore):
    """Repository factory bound to a single shared :class:`MemoryStore`."""

    @asynccontextmanager
    async def open_repositories() -> AsyncIterator[Repositories]:
        yield Repositories(users=MemoryUserRepository(store), sessions=MemorySessionRepository(store))

    return open_repositories
