"""
Unit tests for SessionValidator and SessionResolver.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from authcore.application.use_cases.session_use_cases import NO_TOKENS, SESSION_EXPIRED
from authcore.domain.models.session_domain_model import (
    RefreshedTokens,
    SessionData,
    SessionRejection,
    ValidatedSession,
    ValidationSource,
)


def identity_of(user):
    return SessionData(user_id=user.id, role=user.role, email=user.email, is_email_verified=user.is_email_verified)


@pytest.fixture
def logged_in(lifecycle, make_user):
    """Factory returning (user, tokens) for a fresh login."""

    async def _login(**user_fields):
        user = make_user(**user_fields)
        return user, await lifecycle.create_session(identity_of(user))

    return _login


# ══════════════════════════════════════════════════════════════════════════════
# VALIDATE SESSION
# ══════════════════════════════════════════════════════════════════════════════


class TestValidateSession:

    @pytest.mark.asyncio
    async def test_valid_access_token(self, validator, logged_in):
        user, tokens = await logged_in()

        result = await validator.validate_session(tokens.access_token)

        assert isinstance(result, ValidatedSession)
        assert result.user_id == user.id
        assert result.role == user.role
        assert result.source == ValidationSource.STORE

    @pytest.mark.asyncio
    async def test_touches_last_activity_in_background(self, validator, background, logged_in, store):
        _, tokens = await logged_in()
        before = store.sessions[tokens.session.id].last_activity

        await asyncio.sleep(0.001)
        await validator.validate_session(tokens.access_token)
        await background.drain()

        assert store.sessions[tokens.session.id].last_activity > before

    @pytest.mark.asyncio
    async def test_touch_failure_does_not_fail_validation(self, validator, background, logged_in, store):
        _, tokens = await logged_in()
        # Lookup succeeds, the detached touch hits the outage
        original = store.check_available
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] > 1:
                raise RuntimeError("boom")
            original()

        store.check_available = flaky
        result = await validator.validate_session(tokens.access_token)
        await background.drain()

        assert isinstance(result, ValidatedSession)

    @pytest.mark.asyncio
    async def test_expired_access_token_is_rejection(self, validator, codec, logged_in):
        user, _ = await logged_in()
        expired = await codec.sign_access(identity_of(user), expires_delta=timedelta(seconds=-5))

        result = await validator.validate_session(expired)

        assert result == SessionRejection(error="Access token expired", status=401)

    @pytest.mark.asyncio
    async def test_garbage_token_is_none(self, validator):
        assert await validator.validate_session("garbage") is None

    @pytest.mark.asyncio
    async def test_refresh_token_is_not_an_access_token(self, validator, logged_in):
        _, tokens = await logged_in()
        assert await validator.validate_session(tokens.refresh_token) is None

    @pytest.mark.asyncio
    async def test_signed_token_without_session_is_none(self, validator, codec, logged_in):
        user, _ = await logged_in()
        orphan = await codec.sign_access(identity_of(user))
        assert await validator.validate_session(orphan) is None

    @pytest.mark.asyncio
    async def test_deleted_session_is_none(self, validator, lifecycle, logged_in):
        _, tokens = await logged_in()
        await lifecycle.end_session(tokens.access_token)
        assert await validator.validate_session(tokens.access_token) is None

    @pytest.mark.asyncio
    async def test_locked_user_is_none(self, validator, logged_in, store):
        user, tokens = await logged_in()
        store.users[user.id].is_locked = True
        assert await validator.validate_session(tokens.access_token) is None

    @pytest.mark.asyncio
    async def test_unverified_user_is_none(self, validator, logged_in, store):
        user, tokens = await logged_in()
        store.users[user.id].is_email_verified = False
        assert await validator.validate_session(tokens.access_token) is None

    @pytest.mark.asyncio
    async def test_expired_session_row_is_none(self, validator, logged_in, store):
        _, tokens = await logged_in()
        store.sessions[tokens.session.id].expires = datetime.now(timezone.utc) - timedelta(seconds=1)
        assert await validator.validate_session(tokens.access_token) is None

    @pytest.mark.asyncio
    async def test_store_outage_falls_back_to_jwt(self, validator, logged_in, store):
        user, tokens = await logged_in()
        store.set_available(False)

        result = await validator.validate_session(tokens.access_token)

        assert isinstance(result, ValidatedSession)
        assert result.source == ValidationSource.JWT_FALLBACK
        assert result.user_id == user.id
        assert result.email == user.email


# ══════════════════════════════════════════════════════════════════════════════
# REFRESH
# ══════════════════════════════════════════════════════════════════════════════


class TestRefreshSessionTokens:

    @pytest.mark.asyncio
    async def test_rotates_both_tokens(self, validator, logged_in, store):
        user, tokens = await logged_in()

        refreshed = await validator.refresh_session_tokens(tokens.refresh_token)

        assert isinstance(refreshed, RefreshedTokens)
        assert refreshed.user_id == user.id
        assert refreshed.access_token != tokens.access_token
        assert refreshed.refresh_token != tokens.refresh_token
        row = store.sessions[tokens.session.id]
        assert row.session_token == refreshed.access_token
        assert row.refresh_token == refreshed.refresh_token

    @pytest.mark.asyncio
    async def test_rotation_extends_expiry(self, validator, logged_in, store):
        _, tokens = await logged_in()
        store.sessions[tokens.session.id].expires = datetime.now(timezone.utc) - timedelta(minutes=1)

        await validator.refresh_session_tokens(tokens.refresh_token)

        assert store.sessions[tokens.session.id].expires > datetime.now(timezone.utc) + timedelta(hours=23)

    @pytest.mark.asyncio
    async def test_old_access_token_stops_working(self, validator, logged_in):
        _, tokens = await logged_in()
        refreshed = await validator.refresh_session_tokens(tokens.refresh_token)

        assert await validator.validate_session(tokens.access_token) is None
        assert isinstance(await validator.validate_session(refreshed.access_token), ValidatedSession)

    @pytest.mark.asyncio
    async def test_refresh_token_is_single_use(self, validator, logged_in):
        _, tokens = await logged_in()

        assert await validator.refresh_session_tokens(tokens.refresh_token) is not None
        assert await validator.refresh_session_tokens(tokens.refresh_token) is None

    @pytest.mark.asyncio
    async def test_concurrent_refresh_has_one_winner(self, validator, logged_in):
        _, tokens = await logged_in()

        results = await asyncio.gather(
            validator.refresh_session_tokens(tokens.refresh_token),
            validator.refresh_session_tokens(tokens.refresh_token),
        )

        assert sum(1 for r in results if r is not None) == 1

    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, validator, logged_in):
        _, tokens = await logged_in()
        assert await validator.refresh_session_tokens(tokens.access_token) is None

    @pytest.mark.asyncio
    async def test_unverified_user_cannot_refresh(self, validator, logged_in, store):
        user, tokens = await logged_in()
        store.users[user.id].is_email_verified = False
        assert await validator.refresh_session_tokens(tokens.refresh_token) is None

    @pytest.mark.asyncio
    async def test_store_outage_returns_none(self, validator, logged_in, store):
        _, tokens = await logged_in()
        store.set_available(False)
        assert await validator.refresh_session_tokens(tokens.refresh_token) is None


# ══════════════════════════════════════════════════════════════════════════════
# RESOLVER
# ══════════════════════════════════════════════════════════════════════════════


class TestSessionResolver:

    @pytest.mark.asyncio
    async def test_no_tokens(self, resolver):
        outcome = await resolver.resolve(None, None)
        assert outcome.status_code == 401
        assert outcome.body == {"error": NO_TOKENS}
        assert outcome.clear_cookies is False

    @pytest.mark.asyncio
    async def test_valid_access(self, resolver, logged_in):
        user, tokens = await logged_in()

        outcome = await resolver.resolve(tokens.access_token, tokens.refresh_token)

        assert outcome.ok
        assert outcome.refreshed is None
        assert outcome.body == {
            "userId": user.id,
            "role": "STUDENT",
            "email": user.email,
            "isEmailVerified": True,
        }

    @pytest.mark.asyncio
    async def test_expired_access_is_refreshed(self, resolver, codec, logged_in):
        user, tokens = await logged_in()
        expired = await codec.sign_access(identity_of(user), expires_delta=timedelta(seconds=-5))

        outcome = await resolver.resolve(expired, tokens.refresh_token)

        assert outcome.ok
        assert outcome.refreshed is not None
        assert outcome.body["userId"] == user.id
        assert outcome.body["message"] == "Tokens refreshed successfully"

        follow_up = await resolver.resolve(outcome.refreshed.access_token, None)
        assert follow_up.ok
        assert follow_up.refreshed is None
        assert follow_up.body["userId"] == user.id

    @pytest.mark.asyncio
    async def test_refresh_only(self, resolver, logged_in):
        _, tokens = await logged_in()
        outcome = await resolver.resolve(None, tokens.refresh_token)
        assert outcome.ok
        assert outcome.refreshed is not None

    @pytest.mark.asyncio
    async def test_invalid_access_without_refresh_clears_cookies(self, resolver):
        outcome = await resolver.resolve("garbage", None)
        assert outcome.status_code == 401
        assert outcome.body == {"error": SESSION_EXPIRED}
        assert outcome.clear_cookies is True

    @pytest.mark.asyncio
    async def test_failed_refresh_clears_cookies(self, resolver):
        outcome = await resolver.resolve("garbage", "also-garbage")
        assert outcome.status_code == 401
        assert outcome.clear_cookies is True
