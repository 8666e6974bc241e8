# authcore/domain/exceptions.py

"""
Application-specific exceptions.

Every exception carries an HTTP status code and an ``internal_code`` so the
exception middleware and the route handlers can turn it into a structured
JSON response without knowing where it was raised.
"""

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AuthCoreException(HTTPException):
    """
    Base exception for the session/authentication core.
    Extends FastAPI's HTTPException to provide additional context.
    """

    def __init__(
            self,
            status_code: int,
            detail: Any = None,
            headers: Optional[Dict[str, Any]] = None,
            internal_code: Optional[str] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.internal_code = internal_code

    def __str__(self) -> str:
        return str(self.detail)


class AuthErrorType(str, Enum):
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    VERIFICATION_ERROR = "VERIFICATION_ERROR"


class AuthenticationError(AuthCoreException):
    """
    Authentication failure surfaced to route handlers.

    Args:
        message: Human readable message, returned as ``error`` in responses
        error_type: One of :class:`AuthErrorType`
        status_code: HTTP status to answer with (401 by default)
    """

    def __init__(
            self,
            message: str,
            error_type: AuthErrorType = AuthErrorType.AUTHENTICATION_ERROR,
            status_code: int = status.HTTP_401_UNAUTHORIZED,
    ):
        super().__init__(
            status_code=status_code,
            detail=message,
            internal_code=AuthErrorType(error_type).value,
        )
        self.message = message
        self.error_type = AuthErrorType(error_type)


class InvalidTokenError(AuthCoreException):
    """Token signature, format or secret problem."""

    def __init__(self, detail: str = "Invalid token"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            internal_code="INVALID_TOKEN"
        )


class TokenExpiredError(InvalidTokenError):
    """Token was validly signed but its ``exp`` has passed."""

    def __init__(self, detail: str = "Token expired"):
        super().__init__(detail=detail)
        self.internal_code = "TOKEN_EXPIRED"


class TokenGenerationError(AuthCoreException):
    """Token could not be signed (usually a missing secret)."""

    def __init__(self, detail: str = "Token generation failed"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            internal_code="TOKEN_GENERATION_ERROR"
        )


class DatabaseOperationException(AuthCoreException):
    """Error while executing a database operation."""

    def __init__(self, detail: str = "Error executing database operation",
                 original_error: Optional[Exception] = None):
        error_info = f": {str(original_error)}" if original_error else ""
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{detail}{error_info}",
            internal_code="DATABASE_OPERATION_ERROR"
        )
        self.original_error = original_error


class StoreUnavailableError(DatabaseOperationException):
    """The backing store could not be reached. Safe to retry."""

    def __init__(self, detail: str = "Can't reach database server",
                 original_error: Optional[Exception] = None):
        super().__init__(detail=detail, original_error=original_error)
        self.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        self.internal_code = "STORE_UNAVAILABLE"
