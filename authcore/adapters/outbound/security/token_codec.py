# authcore/adapters/outbound/security/token_codec.py

"""
Signing and verification of access and refresh tokens.

The codec only answers "is this a validly signed, unexpired token"; checking
that the token is of the kind an operation expects is left to the caller.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JOSEError

from authcore.domain.exceptions import (
    InvalidTokenError,
    TokenExpiredError,
    TokenGenerationError,
)
from authcore.domain.models.session_domain_model import SessionData, TokenClaims, TokenType
from authcore.domain.models.user_domain_model import UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenConfig:
    """
    Immutable signing configuration, built once at startup and injected.

    Attributes:
        secret_key: Process-wide HMAC secret; ``None``/empty makes every
            sign/verify call fail
        algorithm: JWS algorithm
        access_token_ttl: Lifetime of access tokens
        refresh_token_ttl: Lifetime of refresh tokens
    """
    secret_key: Optional[str]
    algorithm: str = "HS256"
    access_token_ttl: timedelta = timedelta(days=1)
    refresh_token_ttl: timedelta = timedelta(days=7)

    @classmethod
    def from_settings(cls, settings) -> "TokenConfig":
        return cls(
            secret_key=settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            access_token_ttl=timedelta(seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS),
            refresh_token_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )


class TokenCodec:
    """
    JWT codec for session tokens.
    """

    def __init__(self, config: TokenConfig):
        self.config = config

    async def sign_access(self, claims: SessionData, expires_delta: timedelta = None) -> str:
        """Create an ACCESS token for the given identity."""
        if expires_delta is None:
            expires_delta = self.config.access_token_ttl
        return self._sign(claims, TokenType.ACCESS, expires_delta)

    async def sign_refresh(self, claims: SessionData, expires_delta: timedelta = None) -> str:
        """Create a REFRESH token for the given identity."""
        if expires_delta is None:
            expires_delta = self.config.refresh_token_ttl
        return self._sign(claims, TokenType.REFRESH, expires_delta)

    async def verify(self, token: str) -> TokenClaims:
        """
        Verify and decode a token of any kind.

        Raises:
            TokenExpiredError: Signature is valid but the token expired
            InvalidTokenError: Bad signature, malformed token or missing secret
        """
        if not self.config.secret_key:
            raise InvalidTokenError(detail="Signing secret is not configured")
        if not token:
            raise InvalidTokenError(detail="Empty token")

        try:
            payload = jwt.decode(token, self.config.secret_key, algorithms=[self.config.algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except JOSEError as e:
            raise InvalidTokenError(detail=f"Invalid token: {e}")

        try:
            return TokenClaims(
                user_id=str(payload["userId"]),
                role=UserRole(payload["role"]),
                email=payload["email"],
                token_type=TokenType(payload["tokenType"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                jti=payload.get("jti", ""),
                is_email_verified=bool(payload.get("isEmailVerified", False)),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidTokenError(detail=f"Malformed token claims: {e}")

    def _sign(self, claims: SessionData, token_type: TokenType, expires_delta: timedelta) -> str:
        if not self.config.secret_key:
            logger.error(f"Refusing to sign {token_type.value} token: no secret configured")
            raise TokenGenerationError(detail=f"{token_type.value.capitalize()} token generation failed")

        now = datetime.now(timezone.utc)
        payload = {
            "userId": str(claims.user_id),
            "role": UserRole(claims.role).value,
            "email": claims.email,
            "isEmailVerified": bool(claims.is_email_verified),
            "tokenType": token_type.value,
            "iat": int(now.timestamp()),
            "exp": int((now + expires_delta).timestamp()),
            "jti": str(uuid.uuid4()),
        }
        try:
            return jwt.encode(payload, self.config.secret_key, algorithm=self.config.algorithm)
        except JOSEError as e:
            logger.error(f"{token_type.value} token generation failed: {e}")
            raise TokenGenerationError(detail=f"{token_type.value.capitalize()} token generation failed")

    def expiry_for_access(self, now: datetime) -> datetime:
        """Timestamp a session row's ``expires`` mirrors for a fresh access token."""
        return now + self.config.access_token_ttl
