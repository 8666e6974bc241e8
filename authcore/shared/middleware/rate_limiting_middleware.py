# authcore/shared/middleware/rate_limiting_middleware.py (async version)

"""
Middleware for request rate limiting.

Every ``/api/*`` request counts against a sliding window kept per client IP.
Requests over the limit are answered with 429 before authentication runs.
Session validation calls made by the routing guard carry the shared
validation key and are not counted.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from authcore.adapters.outbound.http.session_validation_client import (
    VALIDATION_KEY_HEADER,
    is_trusted_validation_call,
)
from authcore.application.ports.outbound import IRateLimiter
from authcore.shared.routing_policy import is_api_path

# Configure logger
logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter(IRateLimiter):
    """
    In-memory sliding window limiter.

    Structure: {ip: [timestamp1, timestamp2, ...]}, only timestamps inside the
    window are kept. Once per window every idle IP is dropped.
    """

    def __init__(self, limit: int = 10, window_seconds: float = 10, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_time = window_seconds
        self.clock = clock
        self.requests: Dict[str, List[float]] = {}
        self._lock = asyncio.Lock()
        self._last_sweep = clock()

    @classmethod
    def from_settings(cls, settings) -> "SlidingWindowRateLimiter":
        return cls(limit=settings.RATE_LIMIT_REQUESTS, window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS)

    def _clean_old_requests(self, ip: str, now: float) -> None:
        """Remove requests outside the time window."""
        cutoff_time = now - self.window_time
        window = [timestamp for timestamp in self.requests.get(ip, []) if timestamp > cutoff_time]
        if window:
            self.requests[ip] = window
        else:
            self.requests.pop(ip, None)

    def _sweep(self, now: float) -> None:
        """Drop every IP whose latest request left the window."""
        cutoff_time = now - self.window_time
        stale = [ip for ip, timestamps in self.requests.items() if not timestamps or timestamps[-1] <= cutoff_time]
        for ip in stale:
            del self.requests[ip]
        self._last_sweep = now
        if stale:
            logger.debug(f"Rate limiter dropped {len(stale)} idle clients")

    async def check_rate_limit(self, client_ip: str) -> bool:
        async with self._lock:
            now = self.clock()
            if now - self._last_sweep >= self.window_time:
                self._sweep(now)
            self._clean_old_requests(client_ip, now)
            window = self.requests.setdefault(client_ip, [])
            if len(window) >= self.limit:
                return False
            window.append(now)
            return True


def get_client_ip(request: Request) -> str:
    """First ``X-Forwarded-For`` hop, then ``X-Real-IP``, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class AsyncRateLimitingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that limits the number of ``/api`` requests by IP.

    A limiter failure lets the request through.
    """

    def __init__(
            self,
            app,
            limiter: Optional[IRateLimiter] = None,
            window_seconds: int = 10,
            validation_key: Optional[str] = None,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.window_seconds = window_seconds
        self.validation_key = validation_key

    def _get_limiter(self, request: Request) -> Optional[IRateLimiter]:
        if self.limiter is not None:
            return self.limiter
        runtime = getattr(request.app.state, "runtime", None)
        return runtime.rate_limiter if runtime is not None else None

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        limiter = self._get_limiter(request)
        if not is_api_path(path) or limiter is None:
            return await call_next(request)

        if is_trusted_validation_call(path, request.headers.get(VALIDATION_KEY_HEADER), self.validation_key):
            return await call_next(request)

        client_ip = get_client_ip(request)
        try:
            allowed = await limiter.check_rate_limit(client_ip)
        except Exception as e:
            logger.error(f"Rate limiter failed, allowing request from {client_ip}: {e!r}")
            allowed = True

        if not allowed:
            logger.warning(f"Rate limit exceeded for IP: {client_ip} on path: {path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": "Too many requests"},
                headers={"Retry-After": str(self.window_seconds)},
            )

        return await call_next(request)
