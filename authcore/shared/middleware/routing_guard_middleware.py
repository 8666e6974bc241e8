# authcore/shared/middleware/routing_guard_middleware.py (async version)

"""
Middleware that decides, per request, whether a session is required.

The path is classified by :class:`RoutingPolicy`; for anything that is not
public the caller's cookies are sent to the session validation client. Pages
without a session are redirected to the sign-in page, API calls get JSON
errors. Downstream handlers read the resolved identity from the
``x-user-id`` and ``x-user-role`` request headers.
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from authcore.adapters.outbound.http.session_validation_client import ValidationResponse
from authcore.shared.routing_policy import DEFAULT_ROUTING_POLICY, RouteDecision, is_api_path

# Configure logger
logger = logging.getLogger(__name__)

USER_ID_HEADER = b"x-user-id"
USER_ROLE_HEADER = b"x-user-role"


class AsyncRoutingGuardMiddleware(BaseHTTPMiddleware):

    def __init__(
            self,
            app,
            validation_client=None,
            policy=None,
            attempts: int = 3,
            retry_delay_seconds: float = 0.5,
            sign_in_path: str = "/auth/signin",
    ):
        super().__init__(app)
        self.validation_client = validation_client
        self.policy = policy
        self.attempts = attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.sign_in_path = sign_in_path

    def _get_runtime_value(self, request: Request, name: str):
        runtime = getattr(request.app.state, "runtime", None)
        return getattr(runtime, name, None) if runtime is not None else None

    async def validate(self, request: Request) -> Optional[ValidationResponse]:
        """
        Ask the validation client for the caller's identity.

        Transport errors and non-401 error statuses are retried; a 401 is a
        definitive "not authenticated" and is returned immediately.

        Returns:
            The last response, or None when every attempt failed
        """
        client = self.validation_client or self._get_runtime_value(request, "validation_client")
        cookies = dict(request.cookies)

        for attempt in range(1, self.attempts + 1):
            try:
                response = await client.validate(cookies)
                if response.status_code in (status.HTTP_200_OK, status.HTTP_401_UNAUTHORIZED):
                    return response
                logger.warning(
                    f"Session validation attempt {attempt}/{self.attempts} returned {response.status_code}"
                )
            except Exception as e:
                logger.warning(f"Session validation attempt {attempt}/{self.attempts} failed: {e!r}")

            if attempt < self.attempts:
                await asyncio.sleep(self.retry_delay_seconds)

        logger.error(f"Session validation failed after {self.attempts} attempts: {request.url.path}")
        return None

    @staticmethod
    def _strip_identity_headers(request: Request) -> None:
        request.scope["headers"] = [
            (key, value) for key, value in request.scope["headers"]
            if key.lower() not in (USER_ID_HEADER, USER_ROLE_HEADER)
        ]

    @staticmethod
    def _inject_identity(request: Request, user_id: str, role: str) -> None:
        request.scope["headers"].append((USER_ID_HEADER, str(user_id).encode("latin-1")))
        request.scope["headers"].append((USER_ROLE_HEADER, str(role).encode("latin-1")))

    @staticmethod
    def _forward_cookies(response, set_cookies: List[str]):
        for value in set_cookies:
            response.headers.append("set-cookie", value)
        return response

    def _reject_unauthenticated(self, request: Request, decision: RouteDecision):
        path = request.url.path
        if decision.admin_api:
            return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": "Admin access required"})
        if is_api_path(path):
            return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Authentication required"})
        return RedirectResponse(url=self.sign_in_path, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        policy = self.policy or self._get_runtime_value(request, "routing_policy") or DEFAULT_ROUTING_POLICY
        decision = policy.classify(path, request.method)

        self._strip_identity_headers(request)

        if not decision.requires_auth:
            return await call_next(request)

        result = await self.validate(request)
        set_cookies = result.set_cookies if result is not None else []

        if result is None or result.status_code != status.HTTP_200_OK:
            logger.info(f"Unauthenticated request to protected path: {request.method} {path}")
            return self._forward_cookies(self._reject_unauthenticated(request, decision), set_cookies)

        identity = result.payload
        role = identity.get("role")
        if not decision.allows(role):
            logger.warning(f"User {identity.get('userId')} with role {role} denied on {path}")
            error = "Admin access required" if decision.admin_api else "Access denied"
            return self._forward_cookies(
                JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": error}), set_cookies
            )

        self._inject_identity(request, identity.get("userId"), role)
        response = await call_next(request)
        return self._forward_cookies(response, set_cookies)
