"""
Unit tests for the clients the routing guard uses to validate sessions.
"""

import httpx
import pytest

from authcore.adapters.configuration.config import Settings
from authcore.adapters.inbound.api.cookies import CookiePolicy
from authcore.adapters.outbound.http.session_validation_client import (
    VALIDATE_SESSION_PATH,
    HttpSessionValidationClient,
    LocalSessionValidationClient,
    derive_validation_key,
    is_trusted_validation_call,
)
from authcore.application.use_cases.session_use_cases import NO_TOKENS
from authcore.domain.models.session_domain_model import SessionData


def identity_of(user):
    return SessionData(user_id=user.id, role=user.role, email=user.email, is_email_verified=user.is_email_verified)


class TestHttpSessionValidationClient:

    @pytest.mark.asyncio
    async def test_forwards_cookies_and_collects_set_cookie(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["method"] = request.method
            seen["cookie"] = request.headers.get("cookie")
            return httpx.Response(
                200,
                json={"userId": "u1", "role": "ADMIN"},
                headers=[
                    ("set-cookie", "access_token=new-access; Path=/"),
                    ("set-cookie", "refresh_token=new-refresh; Path=/"),
                ],
            )

        client = HttpSessionValidationClient("http://auth.local/", transport=httpx.MockTransport(handler))
        response = await client.validate({"access_token": "a", "refresh_token": "r"})

        assert seen == {
            "path": "/api/session/validateSession",
            "method": "POST",
            "cookie": "access_token=a; refresh_token=r",
        }
        assert response.status_code == 200
        assert response.payload == {"userId": "u1", "role": "ADMIN"}
        assert response.set_cookies == [
            "access_token=new-access; Path=/",
            "refresh_token=new-refresh; Path=/",
        ]

    @pytest.mark.asyncio
    async def test_non_json_body_becomes_empty_payload(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(502, text="Bad Gateway"))
        client = HttpSessionValidationClient("http://auth.local", transport=transport)

        response = await client.validate({})

        assert response.status_code == 502
        assert response.payload == {}
        assert response.set_cookies == []

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = HttpSessionValidationClient("http://auth.local", transport=httpx.MockTransport(handler))

        with pytest.raises(httpx.ConnectError):
            await client.validate({"access_token": "a"})

    @pytest.mark.asyncio
    async def test_sends_validation_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers.get("x-session-validation-key")
            return httpx.Response(401, json={"error": NO_TOKENS})

        client = HttpSessionValidationClient(
            "http://auth.local", transport=httpx.MockTransport(handler), validation_key="shared"
        )
        await client.validate({})

        assert seen["key"] == "shared"

    @pytest.mark.asyncio
    async def test_no_key_header_without_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["has_key"] = "x-session-validation-key" in request.headers
            return httpx.Response(401, json={"error": NO_TOKENS})

        await HttpSessionValidationClient("http://auth.local", transport=httpx.MockTransport(handler)).validate({})

        assert seen["has_key"] is False


class TestValidationKey:

    def test_explicit_key_wins(self):
        settings = Settings(SECRET_KEY="secret", SESSION_VALIDATION_KEY="explicit")
        assert derive_validation_key(settings) == "explicit"

    def test_derived_from_secret(self):
        first = derive_validation_key(Settings(SECRET_KEY="secret"))
        again = derive_validation_key(Settings(SECRET_KEY="secret"))
        other = derive_validation_key(Settings(SECRET_KEY="another-secret"))

        assert first == again
        assert first != other
        assert first != "secret"

    def test_no_secret_no_key(self):
        assert derive_validation_key(Settings(SECRET_KEY=None)) is None

    def test_trusted_call_needs_path_and_matching_key(self):
        assert is_trusted_validation_call(VALIDATE_SESSION_PATH, "k", "k") is True
        assert is_trusted_validation_call(VALIDATE_SESSION_PATH, "wrong", "k") is False
        assert is_trusted_validation_call(VALIDATE_SESSION_PATH, None, "k") is False
        assert is_trusted_validation_call(VALIDATE_SESSION_PATH, "k", None) is False
        assert is_trusted_validation_call("/api/session/refreshSession", "k", "k") is False


class TestLocalSessionValidationClient:

    @pytest.fixture
    def client(self, resolver):
        return LocalSessionValidationClient(resolver, CookiePolicy())

    @pytest.mark.asyncio
    async def test_valid_session(self, client, lifecycle, make_user):
        user = make_user()
        tokens = await lifecycle.create_session(identity_of(user))

        response = await client.validate({"access_token": tokens.access_token})

        assert response.status_code == 200
        assert response.payload["userId"] == user.id
        assert response.payload["role"] == "STUDENT"
        assert response.set_cookies == []

    @pytest.mark.asyncio
    async def test_refresh_returns_new_cookies(self, client, lifecycle, make_user):
        user = make_user()
        tokens = await lifecycle.create_session(identity_of(user))

        response = await client.validate({"refresh_token": tokens.refresh_token})

        assert response.status_code == 200
        assert response.payload["message"] == "Tokens refreshed successfully"
        names = {cookie.split("=", 1)[0] for cookie in response.set_cookies}
        assert names == {"access_token", "refresh_token", "x-user-id", "x-user-role"}

    @pytest.mark.asyncio
    async def test_no_tokens(self, client):
        response = await client.validate({})

        assert response.status_code == 401
        assert response.payload == {"error": NO_TOKENS}
