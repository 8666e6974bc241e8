# authcore/adapters/inbound/api/v1/endpoints/auth_endpoint.py (async version)

import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, status
from fastapi.responses import JSONResponse

from authcore.adapters.inbound.api.cookies import CookiePolicy
from authcore.adapters.inbound.api.deps import (
    auth_error_response,
    get_auth_service,
    get_cookie_policy,
    get_current_user_id,
    get_device_info,
    get_lifecycle,
    get_resolver,
    get_validator,
)
from authcore.application.dtos.auth_dto import LoginRequest, UserOutput
from authcore.application.use_cases.auth_use_cases import AsyncAuthService
from authcore.application.use_cases.session_use_cases import (
    SessionLifecycleManager,
    SessionResolver,
    SessionValidator,
)
from authcore.domain.exceptions import AuthenticationError
from authcore.domain.models.session_domain_model import (
    DeviceInfo,
    ResolutionOutcome,
    ValidatedSession,
    ValidationSource,
)
from authcore.domain.models.user_domain_model import UserRole

logger = logging.getLogger(__name__)
router = APIRouter()


def _rejected(cookie_policy: CookiePolicy, error: str, clear_cookies: bool = True) -> JSONResponse:
    return cookie_policy.render_outcome(
        ResolutionOutcome(
            status_code=status.HTTP_401_UNAUTHORIZED,
            body={"success": False, "error": error},
            clear_cookies=clear_cookies,
        )
    )


def _minimal_profile(user_id: str, email: str, role: UserRole, is_email_verified: bool) -> dict:
    return {
        "id": user_id,
        "email": email,
        "role": UserRole(role).value,
        "isEmailVerified": is_email_verified,
    }


async def _profile_for(auth_service: AsyncAuthService, identity: ValidatedSession) -> Optional[dict]:
    profile = await auth_service.get_profile(identity.user_id)
    if profile is not None:
        return profile.to_json()
    if identity.source == ValidationSource.JWT_FALLBACK:
        # Store is down: the token claims are all we know about the user
        return _minimal_profile(identity.user_id, identity.email, identity.role, identity.is_email_verified)
    return None


@router.post(
    "/login",
    summary="Login User - Opens a session",
    description=(
            "Authenticates a user (email/password), opens a session and sets the "
            "`access_token`, `refresh_token`, `x-user-id` and `x-user-role` cookies. "
            "Five consecutive failures lock the account for 15 minutes."
    ),
    responses={
        200: {
            "description": "Login successful",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "message": "Login successful",
                        "data": {
                            "user": {
                                "id": "3fa85f64-5717-4562-b3fc-2c963f66afa6",
                                "email": "user@example.com",
                                "role": "STUDENT",
                                "username": "student1",
                                "name": "Student",
                                "isEmailVerified": True
                            }
                        }
                    }
                }
            }
        },
        401: {"description": "Invalid credentials"},
        403: {"description": "Account locked or not verified"},
        503: {"description": "Database temporarily unreachable"},
    }
)
async def login_user(
        credentials: LoginRequest,
        device_info: DeviceInfo = Depends(get_device_info),
        auth_service: AsyncAuthService = Depends(get_auth_service),
        cookie_policy: CookiePolicy = Depends(get_cookie_policy),
):
    try:
        result = await auth_service.login_user(credentials, device_info)
    except AuthenticationError as e:
        logger.warning(f"Login failed: {e.message} ({e.error_type.value})")
        return auth_error_response(e)

    response = JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "message": "Login successful",
            "data": {"user": result.user.to_json()},
        },
    )
    cookie_policy.set_auth_cookies(
        response,
        result.tokens.access_token,
        result.tokens.refresh_token,
        result.user.id,
        result.user.role,
    )
    return response


@router.post(
    "/verify-token",
    summary="Verify Token - Returns the profile of the current session",
    description="Validate-or-refresh from the auth cookies, returning the user profile.",
)
async def verify_token(
        access_token: Optional[str] = Cookie(None),
        refresh_token: Optional[str] = Cookie(None),
        resolver: SessionResolver = Depends(get_resolver),
        auth_service: AsyncAuthService = Depends(get_auth_service),
        cookie_policy: CookiePolicy = Depends(get_cookie_policy),
):
    outcome = await resolver.resolve(access_token, refresh_token)
    if not outcome.ok:
        return _rejected(cookie_policy, outcome.body["error"], outcome.clear_cookies)

    user = await _profile_for(auth_service, outcome.identity)
    if user is None:
        return _rejected(cookie_policy, "User not found or unverified")

    return cookie_policy.render_outcome(outcome, body={"success": True, "user": user})


@router.post(
    "/refresh",
    summary="Refresh Token - Rotates the refresh token cookie",
)
async def refresh_tokens(
        refresh_token: Optional[str] = Cookie(None),
        validator: SessionValidator = Depends(get_validator),
        auth_service: AsyncAuthService = Depends(get_auth_service),
        cookie_policy: CookiePolicy = Depends(get_cookie_policy),
):
    if not refresh_token:
        return _rejected(cookie_policy, "No refresh token found")

    refreshed = await validator.refresh_session_tokens(refresh_token)
    if refreshed is None:
        return _rejected(cookie_policy, "Invalid or expired refresh token")

    # Rotation is committed; the response carries the new pair either way
    profile: Optional[UserOutput] = await auth_service.get_profile(refreshed.user_id)
    if profile is not None:
        user = profile.to_json()
    else:
        user = _minimal_profile(refreshed.user_id, refreshed.email, refreshed.role, refreshed.is_email_verified)

    return cookie_policy.render_outcome(
        ResolutionOutcome(
            status_code=status.HTTP_200_OK,
            body={"success": True, "user": user},
            refreshed=refreshed,
        )
    )


@router.post(
    "/logout",
    summary="Logout - Ends the current session",
)
async def logout_user(
        access_token: Optional[str] = Cookie(None),
        lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
        cookie_policy: CookiePolicy = Depends(get_cookie_policy),
):
    if not access_token:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "No access token found"},
        )

    try:
        session = await lifecycle.end_session(access_token)
    except AuthenticationError as e:
        return auth_error_response(e)

    if session is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "message": "Session not found"},
        )

    response = JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"success": True, "message": "Logout successful"},
    )
    cookie_policy.clear_auth_cookies(response)
    return response


@router.post(
    "/logout-all",
    summary="Logout All - Ends every session of the current user",
)
async def logout_all_devices(
        user_id: str = Depends(get_current_user_id),
        lifecycle: SessionLifecycleManager = Depends(get_lifecycle),
        cookie_policy: CookiePolicy = Depends(get_cookie_policy),
):
    try:
        removed = await lifecycle.invalidate_all_sessions(user_id)
    except AuthenticationError as e:
        return auth_error_response(e)

    response = JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"success": True, "message": "Logged out from all devices", "sessionsRemoved": removed},
    )
    cookie_policy.clear_auth_cookies(response)
    return response
