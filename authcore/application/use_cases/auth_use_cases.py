# authcore/application/use_cases/auth_use_cases.py (async version)

"""
Service for user login.

Checks credentials, keeps the failed-login counters that drive the account
lockout, and hands successful logins to the session lifecycle.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import status

from authcore.adapters.outbound.security.password_manager import PasswordManager
from authcore.application.dtos.auth_dto import LoginRequest, UserOutput
from authcore.application.ports.outbound import ILoginNotifier, RepositoryFactory
from authcore.application.use_cases.session_use_cases import SessionLifecycleManager, utcnow
from authcore.domain.exceptions import (
    AuthenticationError,
    AuthErrorType,
    DatabaseOperationException,
    StoreUnavailableError,
)
from authcore.domain.models.session_domain_model import DeviceInfo, SessionData, SessionTokens
from authcore.domain.services.auth_service import LockoutService
from authcore.shared.utils.background import DetachedTasks
from authcore.shared.utils.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
ACCOUNT_BLOCKED = "Account blocked due to too many failed attempts"
ACCOUNT_LOCKED = "Account temporarily locked. Try again later."


@dataclass
class LoginResult:
    tokens: SessionTokens
    user: UserOutput


class AsyncAuthService:
    """
    Service for user authentication.

    Wrong passwords for an existing account and unknown emails produce the
    same generic message; only the attempt that triggers the lock says so.
    """

    def __init__(
            self,
            repositories: RepositoryFactory,
            lifecycle: SessionLifecycleManager,
            lockout: LockoutService,
            retry_policy: RetryPolicy,
            background: DetachedTasks,
            notifier: Optional[ILoginNotifier] = None,
    ):
        self.repositories = repositories
        self.lifecycle = lifecycle
        self.lockout = lockout
        self.retry_policy = retry_policy
        self.background = background
        self.notifier = notifier

    async def login_user(self, credentials: LoginRequest, device_info: DeviceInfo) -> LoginResult:
        """
        Authenticate a user and open a session.

        Args:
            credentials: Email and password
            device_info: User agent and IP of the caller

        Returns:
            Tokens, the stored session and the public user payload

        Raises:
            AuthenticationError: 401 bad credentials, 403 locked or
                unverified account, 503 database unreachable
        """
        try:
            async with self.repositories() as repos:
                user = await with_retry(
                    lambda: repos.users.get_by_email(credentials.email), self.retry_policy, "load user"
                )
                if user is None:
                    raise AuthenticationError(INVALID_CREDENTIALS)

                if user.is_currently_locked(utcnow()):
                    raise AuthenticationError(
                        ACCOUNT_LOCKED, AuthErrorType.RATE_LIMIT_ERROR, status.HTTP_403_FORBIDDEN
                    )

                if not await PasswordManager.verify_password(credentials.password, user.password):
                    state = self.lockout.register_failure(user, utcnow())
                    await with_retry(
                        lambda: repos.users.update_lockout(
                            user.id, state.login_attempts, state.is_locked, state.lock_until
                        ),
                        self.retry_policy,
                        "record failed login",
                    )
                    if state.is_locked:
                        logger.warning(f"User {user.id} locked until {state.lock_until} after failed logins")
                        raise AuthenticationError(
                            ACCOUNT_BLOCKED, AuthErrorType.RATE_LIMIT_ERROR, status.HTTP_403_FORBIDDEN
                        )
                    raise AuthenticationError(INVALID_CREDENTIALS)

                if not user.is_email_verified:
                    raise AuthenticationError(
                        "Account not verified", AuthErrorType.VERIFICATION_ERROR, status.HTTP_403_FORBIDDEN
                    )

        except StoreUnavailableError as e:
            logger.error(f"[LOGIN_ERROR] database unreachable: {e}")
            raise AuthenticationError(
                "Database connection error, please try again later",
                AuthErrorType.AUTHENTICATION_ERROR,
                status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        except DatabaseOperationException as e:
            logger.error(f"[LOGIN_ERROR] {e}")
            raise AuthenticationError(
                "Internal server error", AuthErrorType.AUTHENTICATION_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        tokens = await self.lifecycle.create_session(
            SessionData(
                user_id=user.id,
                role=user.role,
                email=user.email,
                is_email_verified=user.is_email_verified,
            ),
            device_info,
        )

        if self.notifier is not None:
            self.background.spawn(
                self.notifier.send_login_alert(
                    user.email, device_info.user_agent, device_info.ip_address, tokens.session.id
                ),
                name=f"login-alert-{tokens.session.id}",
            )

        logger.info(f"User {user.id} logged in (session {tokens.session.id})")
        return LoginResult(tokens=tokens, user=UserOutput.from_user(user))

    async def get_profile(self, user_id: str) -> Optional[UserOutput]:
        """Public profile of a user, used by the verify-token endpoint."""
        try:
            async with self.repositories() as repos:
                user = await repos.users.get(user_id)
        except DatabaseOperationException as e:
            logger.error(f"[PROFILE_ERROR] {e}")
            return None
        return UserOutput.from_user(user) if user else None
