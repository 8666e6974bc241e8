# authcore/shared/middleware/__init__.py (async version)

from authcore.shared.middleware.exception_middleware import AsyncExceptionMiddleware
from authcore.shared.middleware.logging_middleware import AsyncRequestLoggingMiddleware
from authcore.shared.middleware.rate_limiting_middleware import AsyncRateLimitingMiddleware
from authcore.shared.middleware.routing_guard_middleware import AsyncRoutingGuardMiddleware

# Export all for easy imports
__all__ = [
    "AsyncExceptionMiddleware",
    "AsyncRequestLoggingMiddleware",
    "AsyncRateLimitingMiddleware",
    "AsyncRoutingGuardMiddleware",
]
