# authcore/domain/models/session_domain_model.py

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from authcore.domain.models.user_domain_model import User, UserRole


class TokenType(str, Enum):
    ACCESS = "ACCESS"
    REFRESH = "REFRESH"


@dataclass(frozen=True)
class SessionData:
    """Identity a session is issued for; also the claims payload before signing."""
    user_id: str
    role: UserRole
    email: str
    is_email_verified: bool = False


@dataclass(frozen=True)
class TokenClaims:
    """Decoded, signature-verified token payload."""
    user_id: str
    role: UserRole
    email: str
    token_type: TokenType
    issued_at: datetime
    expires_at: datetime
    jti: str
    is_email_verified: bool = False


@dataclass(frozen=True)
class DeviceInfo:
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass
class Session:
    """
    A logged-in device.

    ``session_token`` and ``refresh_token`` always hold the current token pair;
    deleting the row revokes both.
    """
    id: str
    user_id: str
    session_token: str
    refresh_token: str
    expires: datetime
    last_activity: datetime
    created_at: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass
class SessionWithUser:
    session: Session
    user: User


@dataclass
class SessionTokens:
    access_token: str
    refresh_token: str
    session: Session


@dataclass
class RefreshedTokens:
    access_token: str
    refresh_token: str
    user_id: str
    role: UserRole
    email: str = ""
    is_email_verified: bool = False


class ValidationSource(str, Enum):
    STORE = "store"
    JWT_FALLBACK = "jwt-fallback"


@dataclass(frozen=True)
class ValidatedSession:
    """
    Successful validation.

    ``source`` tells store-backed validation apart from the degraded
    JWT-only path taken while the store is unreachable.
    """
    user_id: str
    role: UserRole
    email: str
    is_email_verified: bool
    source: ValidationSource = ValidationSource.STORE

    def as_payload(self) -> dict:
        return {
            "userId": self.user_id,
            "role": UserRole(self.role).value,
            "email": self.email,
            "isEmailVerified": self.is_email_verified,
        }


@dataclass(frozen=True)
class SessionRejection:
    error: str
    status: int = 401


ValidationResult = Union[ValidatedSession, SessionRejection, None]


@dataclass
class ResolutionOutcome:
    """
    Result of the validate-or-refresh protocol.

    ``refreshed`` is set when new tokens were minted and must be handed to the
    client; ``clear_cookies`` when the client's auth cookies should be dropped.
    """
    status_code: int
    body: dict
    identity: Optional[ValidatedSession] = None
    refreshed: Optional[RefreshedTokens] = None
    clear_cookies: bool = False

    @property
    def ok(self) -> bool:
        return self.status_code == 200
