# authcore/adapters/inbound/api/v1/endpoints/session_endpoint.py (async version)

import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, status
from fastapi.responses import JSONResponse

from authcore.adapters.inbound.api.cookies import CookiePolicy
from authcore.adapters.inbound.api.deps import get_cookie_policy, get_resolver, get_validator
from authcore.application.dtos.auth_dto import RefreshTokenRequest
from authcore.application.use_cases.session_use_cases import SessionResolver, SessionValidator
from authcore.domain.models.session_domain_model import ResolutionOutcome
from authcore.domain.models.user_domain_model import UserRole

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/validateSession",
    summary="Validate Session - Resolves the caller from its cookies",
    description=(
            "Validates the `access_token` cookie against the session table. When it is "
            "missing or no longer valid, the `refresh_token` cookie is rotated instead "
            "and new cookies are set on the response."
    ),
    responses={
        200: {
            "description": "Session is valid (or was refreshed)",
            "content": {
                "application/json": {
                    "example": {
                        "userId": "3fa85f64-5717-4562-b3fc-2c963f66afa6",
                        "role": "STUDENT",
                        "email": "user@example.com",
                        "isEmailVerified": True
                    }
                }
            }
        },
        401: {
            "description": "No usable session",
            "content": {
                "application/json": {
                    "example": {"error": "Session expired, please login again"}
                }
            }
        }
    }
)
async def validate_session(
        access_token: Optional[str] = Cookie(None),
        refresh_token: Optional[str] = Cookie(None),
        resolver: SessionResolver = Depends(get_resolver),
        cookie_policy: CookiePolicy = Depends(get_cookie_policy),
):
    outcome = await resolver.resolve(access_token, refresh_token)
    if not outcome.ok:
        logger.info(f"[VALIDATE_SESSION] {outcome.body.get('error')}")
    return cookie_policy.render_outcome(outcome)


@router.post(
    "/refreshSession",
    summary="Refresh Session - Rotates a refresh token passed in the body",
)
async def refresh_session(
        payload: Optional[RefreshTokenRequest] = None,
        validator: SessionValidator = Depends(get_validator),
        cookie_policy: CookiePolicy = Depends(get_cookie_policy),
):
    if payload is None or not payload.refresh_token:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "No refresh token provided"})

    refreshed = await validator.refresh_session_tokens(payload.refresh_token)
    if refreshed is None:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Token refresh failed"})

    logger.info(f"Token refresh completed for user {refreshed.user_id}")
    return cookie_policy.render_outcome(
        ResolutionOutcome(
            status_code=status.HTTP_200_OK,
            body={"userId": refreshed.user_id, "role": UserRole(refreshed.role).value},
            refreshed=refreshed,
        )
    )
