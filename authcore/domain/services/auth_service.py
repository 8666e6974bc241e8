# authcore/domain/services/auth_service.py

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from authcore.domain.models.user_domain_model import User


@dataclass(frozen=True)
class SessionPolicy:
    """
    Limits applied by the session lifecycle.

    Attributes:
        max_concurrent_sessions: Live sessions allowed per user before the
            oldest one is evicted
        max_login_attempts: Consecutive failed logins that lock the account
        lockout_duration: How long a lock lasts
    """
    max_concurrent_sessions: int = 3
    max_login_attempts: int = 5
    lockout_duration: timedelta = timedelta(minutes=15)

    @classmethod
    def from_settings(cls, settings) -> "SessionPolicy":
        return cls(
            max_concurrent_sessions=settings.MAX_CONCURRENT_SESSIONS,
            max_login_attempts=settings.MAX_LOGIN_ATTEMPTS,
            lockout_duration=timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES),
        )


@dataclass(frozen=True)
class LockoutState:
    login_attempts: int
    is_locked: bool
    lock_until: Optional[datetime]


class LockoutService:
    """
    Domain service for failed-login bookkeeping.
    """

    def __init__(self, policy: SessionPolicy):
        self.policy = policy

    def register_failure(self, user: User, now: datetime) -> LockoutState:
        """
        Compute the lockout fields after a wrong password.

        A lock that already lapsed does not carry its count over, so the user
        gets a full set of attempts again.

        Args:
            user: User whose password check failed
            now: Current time (timezone aware)

        Returns:
            The new lockout fields to persist
        """
        attempts = user.login_attempts or 0
        if user.is_locked and user.lock_until is not None and user.lock_until <= now:
            attempts = 0

        attempts += 1
        if attempts >= self.policy.max_login_attempts:
            return LockoutState(
                login_attempts=attempts,
                is_locked=True,
                lock_until=now + self.policy.lockout_duration,
            )
        return LockoutState(login_attempts=attempts, is_locked=False, lock_until=None)

    @staticmethod
    def cleared() -> LockoutState:
        return LockoutState(login_attempts=0, is_locked=False, lock_until=None)
