# authcore/application/use_cases/__init__.py (async version)

# Export service classes for easier imports
from authcore.application.use_cases.session_use_cases import (
    SessionLifecycleManager,
    SessionResolver,
    SessionValidator,
)
from authcore.application.use_cases.auth_use_cases import AsyncAuthService

__all__ = [
    "SessionLifecycleManager",
    "SessionResolver",
    "SessionValidator",
    "AsyncAuthService",
]
