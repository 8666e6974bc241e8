# authcore/domain/__init__.py

"""
Domain components: models, lockout and session rules, exceptions.
"""

# Export all exceptions for easier imports
from authcore.domain.exceptions import (
    AuthCoreException,
    AuthErrorType,
    AuthenticationError,
    InvalidTokenError,
    TokenExpiredError,
    TokenGenerationError,
    DatabaseOperationException,
    StoreUnavailableError,
)

__all__ = [
    "AuthCoreException",
    "AuthErrorType",
    "AuthenticationError",
    "InvalidTokenError",
    "TokenExpiredError",
    "TokenGenerationError",
    "DatabaseOperationException",
    "StoreUnavailableError",
]
