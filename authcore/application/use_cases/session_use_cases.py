# authcore/application/use_cases/session_use_cases.py (async version)

"""
Session lifecycle, validation and refresh.

This module implements the core of the session layer: creating sessions at
login, evicting the oldest session when a user goes over the concurrency cap,
validating access tokens against the session table and rotating token pairs.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import status

from authcore.adapters.outbound.security.token_codec import TokenCodec
from authcore.application.ports.outbound import RepositoryFactory
from authcore.domain.exceptions import (
    AuthenticationError,
    AuthErrorType,
    DatabaseOperationException,
    InvalidTokenError,
    StoreUnavailableError,
    TokenExpiredError,
    TokenGenerationError,
)
from authcore.domain.models.session_domain_model import (
    DeviceInfo,
    RefreshedTokens,
    ResolutionOutcome,
    Session,
    SessionData,
    SessionRejection,
    SessionTokens,
    TokenType,
    ValidatedSession,
    ValidationResult,
    ValidationSource,
)
from authcore.domain.services.auth_service import LockoutService, SessionPolicy
from authcore.shared.utils.background import DetachedTasks
from authcore.shared.utils.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRED = "Access token expired"
NO_TOKENS = "No authentication tokens found"
SESSION_EXPIRED = "Session expired, please login again"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionLifecycleManager:
    """
    Creates and tears down sessions.

    Every store call goes through :func:`with_retry`, so a briefly unreachable
    database is retried with exponential backoff before the caller sees a 503.
    """

    def __init__(
            self,
            codec: TokenCodec,
            repositories: RepositoryFactory,
            policy: SessionPolicy,
            retry_policy: RetryPolicy,
    ):
        self.codec = codec
        self.repositories = repositories
        self.policy = policy
        self.retry_policy = retry_policy

    async def create_session(
            self,
            session_data: SessionData,
            device_info: Optional[DeviceInfo] = None,
            is_signup: bool = False,
    ) -> SessionTokens:
        """
        Create a session for ``session_data.user_id``.

        Args:
            session_data: Identity to embed in the tokens
            device_info: User agent / IP stored on the session row
            is_signup: Skip the lockout check, the eviction and the lockout
                reset (the account was created a moment ago)

        Returns:
            Both tokens and the stored session

        Raises:
            AuthenticationError: 401 unknown user, 403 locked account,
                503 database unreachable, 500 anything else
        """
        device_info = device_info or DeviceInfo()
        try:
            async with self.repositories() as repos:
                if not is_signup:
                    user = await self._retry(lambda: repos.users.get(session_data.user_id), "load user")
                    if user is None:
                        logger.error(f"User not found with userId: {session_data.user_id}")
                        raise AuthenticationError("User not found", AuthErrorType.AUTHENTICATION_ERROR)

                    if user.is_currently_locked(utcnow()):
                        logger.warning(f"Account {user.id} is locked until {user.lock_until}")
                        raise AuthenticationError(
                            "Account temporarily locked. Try again later.",
                            AuthErrorType.RATE_LIMIT_ERROR,
                            status.HTTP_403_FORBIDDEN,
                        )

                    await self._evict_over_cap(repos, session_data.user_id)

                access_token = await self.codec.sign_access(session_data)
                refresh_token = await self.codec.sign_refresh(session_data)

                now = utcnow()
                new_session = Session(
                    id=str(uuid.uuid4()),
                    user_id=session_data.user_id,
                    session_token=access_token,
                    refresh_token=refresh_token,
                    expires=self.codec.expiry_for_access(now),
                    last_activity=now,
                    created_at=now,
                    user_agent=device_info.user_agent,
                    ip_address=device_info.ip_address,
                )
                session = await self._retry(lambda: repos.sessions.create(new_session), "create session")

                if not is_signup:
                    cleared = LockoutService.cleared()
                    await self._retry(
                        lambda: repos.users.update_lockout(
                            session_data.user_id, cleared.login_attempts, cleared.is_locked, cleared.lock_until
                        ),
                        "reset login attempts",
                    )

                logger.info(f"Session {session.id} created for user {session.user_id}")
                return SessionTokens(access_token=access_token, refresh_token=refresh_token, session=session)

        except AuthenticationError:
            raise

        except StoreUnavailableError as e:
            logger.error(f"[CREATE_SESSION_ERROR] database unreachable: {e}")
            raise AuthenticationError(
                "Database connection error, please try again later",
                AuthErrorType.AUTHENTICATION_ERROR,
                status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        except (DatabaseOperationException, TokenGenerationError) as e:
            logger.error(f"[CREATE_SESSION_ERROR] {e}")
            raise AuthenticationError(
                "Session creation failed",
                AuthErrorType.AUTHENTICATION_ERROR,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        except Exception as e:
            logger.exception(f"[CREATE_SESSION_ERROR] unexpected error: {e!r}")
            raise AuthenticationError(
                "Session creation failed",
                AuthErrorType.AUTHENTICATION_ERROR,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

    async def _evict_over_cap(self, repos, user_id: str) -> None:
        """
        Delete the oldest live sessions until a new one fits under the cap.

        Count-then-evict is not serialized: concurrent logins of the same user
        may briefly exceed the cap.
        """
        active = await self._retry(lambda: repos.sessions.count_active_for_user(user_id), "count sessions")
        while active >= self.policy.max_concurrent_sessions:
            oldest = await self._retry(lambda: repos.sessions.find_oldest_for_user(user_id), "find oldest session")
            if oldest is None:
                break
            await self._retry(lambda: repos.sessions.delete(oldest.id), "evict session")
            logger.info(f"Evicted session {oldest.id} of user {user_id} (concurrent session cap)")
            active -= 1

    async def invalidate_all_sessions(self, user_id: str) -> int:
        """
        Delete every session of the user and clear the lockout fields.

        Returns:
            Number of sessions removed

        Raises:
            AuthenticationError: 500 when the store operation fails
        """
        try:
            async with self.repositories() as repos:
                removed = await self._retry(lambda: repos.sessions.delete_all_for_user(user_id), "delete sessions")
                cleared = LockoutService.cleared()
                await self._retry(
                    lambda: repos.users.update_lockout(
                        user_id, cleared.login_attempts, cleared.is_locked, cleared.lock_until
                    ),
                    "reset lockout",
                )
                logger.info(f"Invalidated {removed} sessions of user {user_id}")
                return removed
        except DatabaseOperationException as e:
            logger.error(f"[INVALIDATE_SESSIONS_ERROR] {e}")
            raise AuthenticationError(
                "Failed to invalidate sessions",
                AuthErrorType.AUTHENTICATION_ERROR,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

    async def end_session(self, access_token: str) -> Optional[Session]:
        """Logout: delete the session holding ``access_token``."""
        try:
            async with self.repositories() as repos:
                session = await self._retry(
                    lambda: repos.sessions.delete_by_access_token(access_token), "delete session"
                )
        except DatabaseOperationException as e:
            logger.error(f"[LOGOUT_ERROR] {e}")
            raise AuthenticationError(
                "Failed to end session",
                AuthErrorType.AUTHENTICATION_ERROR,
                status.HTTP_503_SERVICE_UNAVAILABLE
                if isinstance(e, StoreUnavailableError) else status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        if session:
            logger.info(f"Session {session.id} deleted for user {session.user_id}")
        return session

    async def purge_expired(self) -> int:
        async with self.repositories() as repos:
            return await repos.sessions.delete_expired()

    async def _retry(self, operation, description: str):
        return await with_retry(operation, self.retry_policy, description)


class SessionValidator:
    """
    Validates access tokens and rotates token pairs.

    "Not authenticated" is an expected outcome, so failures come back as
    ``None`` or :class:`SessionRejection` rather than exceptions.
    """

    def __init__(
            self,
            codec: TokenCodec,
            repositories: RepositoryFactory,
            background: DetachedTasks,
    ):
        self.codec = codec
        self.repositories = repositories
        self.background = background

    async def validate_session(self, access_token: str) -> ValidationResult:
        """
        Check an access token against its signature and the session table.

        Returns:
            ValidatedSession on success (``source`` tells store-backed from
            JWT-only validation), SessionRejection("Access token expired", 401)
            for an expired token, ``None`` for anything else.
        """
        try:
            claims = await self.codec.verify(access_token)
        except TokenExpiredError:
            return SessionRejection(error=ACCESS_TOKEN_EXPIRED, status=401)
        except InvalidTokenError as e:
            logger.debug(f"[VALIDATE_SESSION] rejected token: {e}")
            return None

        if claims.token_type != TokenType.ACCESS:
            logger.warning("Invalid token type: expected ACCESS")
            return None

        try:
            async with self.repositories() as repos:
                found = await repos.sessions.find_by_access_token(access_token)
        except DatabaseOperationException as e:
            # Degraded mode: the verified signature stands in for the session row.
            logger.warning(f"[VALIDATE_SESSION] store unavailable, jwt-fallback for user {claims.user_id}: {e}")
            return ValidatedSession(
                user_id=claims.user_id,
                role=claims.role,
                email=claims.email,
                is_email_verified=claims.is_email_verified,
                source=ValidationSource.JWT_FALLBACK,
            )

        now = utcnow()
        if (found is None
                or not found.user.is_email_verified
                or found.user.is_locked
                or found.session.expires < now):
            logger.warning("Invalid session or user state")
            return None

        self.background.spawn(self._touch(found.session.id), name=f"touch-session-{found.session.id}")

        return ValidatedSession(
            user_id=found.user.id,
            role=found.user.role,
            email=found.user.email,
            is_email_verified=found.user.is_email_verified,
            source=ValidationSource.STORE,
        )

    async def _touch(self, session_id: str) -> None:
        async with self.repositories() as repos:
            await repos.sessions.update(session_id, {"last_activity": utcnow()})

    async def refresh_session_tokens(self, refresh_token: str) -> Optional[RefreshedTokens]:
        """
        Mint a new access/refresh pair from a refresh token.

        The session row is updated only if it still holds ``refresh_token``,
        so each refresh token works once; a replayed or raced token gets
        ``None``.
        """
        try:
            claims = await self.codec.verify(refresh_token)
        except InvalidTokenError as e:
            logger.info(f"[REFRESH_SESSION] rejected refresh token: {e}")
            return None

        if claims.token_type != TokenType.REFRESH:
            logger.warning("Invalid token type: Not a refresh token")
            return None

        try:
            async with self.repositories() as repos:
                found = await repos.sessions.find_by_refresh_token(refresh_token)
                if found is None or not found.user.is_email_verified:
                    logger.warning("Invalid session or unverified user")
                    return None

                user = found.user
                identity = SessionData(
                    user_id=user.id,
                    role=user.role,
                    email=user.email,
                    is_email_verified=user.is_email_verified,
                )
                new_access_token = await self.codec.sign_access(identity)
                new_refresh_token = await self.codec.sign_refresh(identity)

                now = utcnow()
                rotated = await repos.sessions.update(
                    found.session.id,
                    {
                        "session_token": new_access_token,
                        "refresh_token": new_refresh_token,
                        "expires": self.codec.expiry_for_access(now),
                        "last_activity": now,
                    },
                    expected_refresh_token=refresh_token,
                )
        except (DatabaseOperationException, TokenGenerationError) as e:
            logger.error(f"[REFRESH_SESSION_ERROR] {e}")
            return None

        if not rotated:
            logger.warning(f"Refresh token of session {found.session.id} was already rotated")
            return None

        logger.info(f"Rotated tokens of session {found.session.id}")
        return RefreshedTokens(
            access_token=new_access_token,
            refresh_token=new_refresh_token,
            user_id=user.id,
            role=user.role,
            email=user.email,
            is_email_verified=user.is_email_verified,
        )


class SessionResolver:
    """
    Validate-or-refresh protocol shared by the session endpoints and the
    routing guard.
    """

    def __init__(self, validator: SessionValidator):
        self.validator = validator

    async def resolve(self, access_token: Optional[str], refresh_token: Optional[str]) -> ResolutionOutcome:
        if not access_token and not refresh_token:
            return ResolutionOutcome(status_code=401, body={"error": NO_TOKENS})

        if access_token:
            result = await self.validator.validate_session(access_token)
            if isinstance(result, ValidatedSession):
                return ResolutionOutcome(status_code=200, body=result.as_payload(), identity=result)
            if isinstance(result, SessionRejection):
                logger.info(f"[VALIDATE_SESSION] {result.error}, trying refresh")

        if not refresh_token:
            return ResolutionOutcome(status_code=401, body={"error": SESSION_EXPIRED}, clear_cookies=True)

        refreshed = await self.validator.refresh_session_tokens(refresh_token)
        if refreshed is None:
            return ResolutionOutcome(status_code=401, body={"error": SESSION_EXPIRED}, clear_cookies=True)

        identity = ValidatedSession(
            user_id=refreshed.user_id,
            role=refreshed.role,
            email=refreshed.email,
            is_email_verified=refreshed.is_email_verified,
        )
        body = identity.as_payload()
        body["message"] = "Tokens refreshed successfully"
        return ResolutionOutcome(status_code=200, body=body, identity=identity, refreshed=refreshed)
