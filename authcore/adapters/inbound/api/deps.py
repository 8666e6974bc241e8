# authcore/adapters/inbound/api/deps.py (async version)

"""
Dependencies for injection into API endpoints.

Services come from the :class:`AuthRuntime` stored on ``app.state``; the
caller's identity comes from the headers the routing guard injects.
"""

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from authcore.adapters.inbound.api.cookies import CookiePolicy
from authcore.application.use_cases.auth_use_cases import AsyncAuthService
from authcore.application.use_cases.session_use_cases import (
    SessionLifecycleManager,
    SessionResolver,
    SessionValidator,
)
from authcore.domain.exceptions import AuthenticationError
from authcore.domain.models.session_domain_model import DeviceInfo
from authcore.runtime import AuthRuntime
from authcore.shared.middleware.rate_limiting_middleware import get_client_ip

# Configure logger
logger = logging.getLogger(__name__)


########################################################################
# Runtime services
########################################################################

def get_runtime(request: Request) -> AuthRuntime:
    return request.app.state.runtime


def get_auth_service(runtime: AuthRuntime = Depends(get_runtime)) -> AsyncAuthService:
    return runtime.auth_service


def get_lifecycle(runtime: AuthRuntime = Depends(get_runtime)) -> SessionLifecycleManager:
    return runtime.lifecycle


def get_validator(runtime: AuthRuntime = Depends(get_runtime)) -> SessionValidator:
    return runtime.validator


def get_resolver(runtime: AuthRuntime = Depends(get_runtime)) -> SessionResolver:
    return runtime.resolver


def get_cookie_policy(runtime: AuthRuntime = Depends(get_runtime)) -> CookiePolicy:
    return runtime.cookie_policy


########################################################################
# Identity set by the routing guard
########################################################################

async def get_current_user_id(request: Request) -> str:
    """
    User id of an authenticated request.

    Raises:
        HTTPException: 401 if the routing guard did not resolve a session
    """
    user_id = request.headers.get("x-user-id")
    if not user_id:
        logger.warning(f"No resolved identity on {request.url.path}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user_id


########################################################################
# Error responses
########################################################################

def auth_error_response(error: AuthenticationError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": error.message, "errorType": error.error_type.value},
    )


########################################################################
# Request metadata
########################################################################

def get_device_info(request: Request) -> DeviceInfo:
    """User agent and client address recorded on new sessions."""
    return DeviceInfo(
        user_agent=request.headers.get("user-agent") or "unknown",
        ip_address=get_client_ip(request),
    )
