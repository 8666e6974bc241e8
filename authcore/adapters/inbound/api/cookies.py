# authcore/adapters/inbound/api/cookies.py

"""
Auth cookies shared by login, refresh and session validation responses.
"""

from dataclasses import dataclass

from fastapi import Response
from fastapi.responses import JSONResponse

from authcore.domain.models.session_domain_model import ResolutionOutcome
from authcore.domain.models.user_domain_model import UserRole

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"
USER_ID_COOKIE = "x-user-id"
USER_ROLE_COOKIE = "x-user-role"

AUTH_COOKIES = (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, USER_ID_COOKIE, USER_ROLE_COOKIE)


@dataclass(frozen=True)
class CookiePolicy:
    """
    Attributes:
        secure: Send cookies over HTTPS only (production)
        access_max_age: Lifetime in seconds of access-token-derived cookies
        refresh_max_age: Lifetime in seconds of the refresh token cookie
    """
    secure: bool = False
    access_max_age: int = 60 * 60 * 24
    refresh_max_age: int = 7 * 24 * 60 * 60

    @classmethod
    def from_settings(cls, settings) -> "CookiePolicy":
        return cls(
            secure=settings.is_production,
            access_max_age=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
            refresh_max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        )

    def _set(self, response: Response, name: str, value: str, max_age: int) -> None:
        response.set_cookie(
            key=name,
            value=value,
            max_age=max_age,
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="strict",
        )

    def set_auth_cookies(
            self,
            response: Response,
            access_token: str,
            refresh_token: str,
            user_id: str,
            role: UserRole,
    ) -> None:
        self._set(response, ACCESS_TOKEN_COOKIE, access_token, self.access_max_age)
        self._set(response, REFRESH_TOKEN_COOKIE, refresh_token, self.refresh_max_age)
        self._set(response, USER_ID_COOKIE, user_id, self.access_max_age)
        self._set(response, USER_ROLE_COOKIE, UserRole(role).value, self.access_max_age)

    def clear_auth_cookies(self, response: Response) -> None:
        for name in AUTH_COOKIES:
            self._set(response, name, "", 0)

    def render_outcome(self, outcome: ResolutionOutcome, body: dict = None) -> JSONResponse:
        """JSON response for a validate-or-refresh outcome, cookies included."""
        response = JSONResponse(status_code=outcome.status_code, content=body if body is not None else outcome.body)
        if outcome.refreshed is not None:
            refreshed = outcome.refreshed
            self.set_auth_cookies(
                response,
                refreshed.access_token,
                refreshed.refresh_token,
                refreshed.user_id,
                refreshed.role,
            )
        elif outcome.clear_cookies:
            self.clear_auth_cookies(response)
        return response
