"""
Unit tests for SessionLifecycleManager.
"""

from datetime import datetime, timedelta, timezone

import pytest

from authcore.domain.exceptions import AuthenticationError, AuthErrorType
from authcore.domain.models.session_domain_model import DeviceInfo, SessionData


def identity_of(user):
    return SessionData(
        user_id=user.id,
        role=user.role,
        email=user.email,
        is_email_verified=user.is_email_verified,
    )


# ══════════════════════════════════════════════════════════════════════════════
# CREATE SESSION
# ══════════════════════════════════════════════════════════════════════════════


class TestCreateSession:

    @pytest.mark.asyncio
    async def test_creates_session_row_with_tokens(self, lifecycle, make_user, store):
        user = make_user()
        tokens = await lifecycle.create_session(identity_of(user), DeviceInfo("pytest-agent", "10.0.0.1"))

        stored = store.sessions[tokens.session.id]
        assert stored.session_token == tokens.access_token
        assert stored.refresh_token == tokens.refresh_token
        assert stored.user_agent == "pytest-agent"
        assert stored.ip_address == "10.0.0.1"
        assert stored.expires > datetime.now(timezone.utc) + timedelta(hours=23)

    @pytest.mark.asyncio
    async def test_unknown_user_is_rejected(self, lifecycle, make_user, store):
        user = make_user()
        store.delete_user(user.id)

        with pytest.raises(AuthenticationError) as exc_info:
            await lifecycle.create_session(identity_of(user))
        assert exc_info.value.error_type == AuthErrorType.AUTHENTICATION_ERROR
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_locked_user_is_rejected_with_403(self, lifecycle, make_user):
        user = make_user(is_locked=True, lock_until=datetime.now(timezone.utc) + timedelta(minutes=10))

        with pytest.raises(AuthenticationError) as exc_info:
            await lifecycle.create_session(identity_of(user))
        assert exc_info.value.error_type == AuthErrorType.RATE_LIMIT_ERROR
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_lapsed_lock_does_not_block(self, lifecycle, make_user, store):
        user = make_user(is_locked=True, lock_until=datetime.now(timezone.utc) - timedelta(minutes=1))

        await lifecycle.create_session(identity_of(user))
        assert store.users[user.id].is_locked is False

    @pytest.mark.asyncio
    async def test_success_resets_lockout_fields(self, lifecycle, make_user, store):
        user = make_user(login_attempts=3)

        await lifecycle.create_session(identity_of(user))

        saved = store.users[user.id]
        assert saved.login_attempts == 0
        assert saved.is_locked is False
        assert saved.lock_until is None


class TestConcurrentSessionCap:

    @pytest.mark.asyncio
    async def test_fourth_session_evicts_the_oldest(self, lifecycle, make_user, store):
        user = make_user()
        created = [await lifecycle.create_session(identity_of(user)) for _ in range(4)]

        remaining = {s.id for s in store.sessions_for_user(user.id)}
        assert len(remaining) == 3
        assert created[0].session.id not in remaining
        assert {c.session.id for c in created[1:]} == remaining

    @pytest.mark.asyncio
    async def test_expired_sessions_do_not_count(self, lifecycle, make_user, store):
        user = make_user()
        first = await lifecycle.create_session(identity_of(user))
        store.sessions[first.session.id].expires = datetime.now(timezone.utc) - timedelta(seconds=1)

        for _ in range(3):
            await lifecycle.create_session(identity_of(user))

        live = [s for s in store.sessions_for_user(user.id) if s.expires > datetime.now(timezone.utc)]
        assert len(live) == 3

    @pytest.mark.asyncio
    async def test_signup_skips_lockout_and_cap(self, lifecycle, make_user, store):
        user = make_user(is_locked=True, lock_until=datetime.now(timezone.utc) + timedelta(minutes=10))

        for _ in range(4):
            await lifecycle.create_session(identity_of(user), is_signup=True)

        assert len(store.sessions_for_user(user.id)) == 4
        assert store.users[user.id].is_locked is True


class TestStoreFailures:

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, lifecycle, make_user, store):
        user = make_user()
        store.fail_next(3)

        tokens = await lifecycle.create_session(identity_of(user))
        assert tokens.session.id in store.sessions

    @pytest.mark.asyncio
    async def test_exhausted_retries_surface_503(self, lifecycle, make_user, store):
        user = make_user()
        store.set_available(False)

        with pytest.raises(AuthenticationError) as exc_info:
            await lifecycle.create_session(identity_of(user))
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_signing_failure_surfaces_500(self, repositories, session_policy, retry_policy, make_user):
        from authcore.adapters.outbound.security.token_codec import TokenCodec, TokenConfig
        from authcore.application.use_cases.session_use_cases import SessionLifecycleManager

        broken = SessionLifecycleManager(
            TokenCodec(TokenConfig(secret_key=None)), repositories, session_policy, retry_policy
        )
        with pytest.raises(AuthenticationError) as exc_info:
            await broken.create_session(identity_of(make_user()))
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Session creation failed"

    @pytest.mark.asyncio
    async def test_unsupported_algorithm_surfaces_500(self, repositories, session_policy, retry_policy, make_user):
        from authcore.adapters.outbound.security.token_codec import TokenCodec, TokenConfig
        from authcore.application.use_cases.session_use_cases import SessionLifecycleManager

        from tests.conftest import TEST_SECRET

        broken = SessionLifecycleManager(
            TokenCodec(TokenConfig(secret_key=TEST_SECRET, algorithm="HS999")),
            repositories,
            session_policy,
            retry_policy,
        )
        with pytest.raises(AuthenticationError) as exc_info:
            await broken.create_session(identity_of(make_user()))
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Session creation failed"

    @pytest.mark.asyncio
    async def test_unexpected_error_surfaces_500(self, codec, session_policy, retry_policy, make_user):
        from contextlib import asynccontextmanager

        from authcore.application.use_cases.session_use_cases import SessionLifecycleManager

        @asynccontextmanager
        async def exploding_repositories():
            raise RuntimeError("connection pool exhausted")
            yield

        broken = SessionLifecycleManager(codec, exploding_repositories, session_policy, retry_policy)
        with pytest.raises(AuthenticationError) as exc_info:
            await broken.create_session(identity_of(make_user()))
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Session creation failed"


# ══════════════════════════════════════════════════════════════════════════════
# TEARDOWN
# ══════════════════════════════════════════════════════════════════════════════


class TestTeardown:

    @pytest.mark.asyncio
    async def test_invalidate_all_sessions(self, lifecycle, validator, make_user, store):
        user = make_user()
        other = make_user()
        issued = [await lifecycle.create_session(identity_of(user)) for _ in range(3)]
        kept = await lifecycle.create_session(identity_of(other))
        store.users[user.id].login_attempts = 2

        removed = await lifecycle.invalidate_all_sessions(user.id)

        assert removed == 3
        assert store.sessions_for_user(user.id) == []
        assert len(store.sessions_for_user(other.id)) == 1
        assert store.users[user.id].login_attempts == 0
        for tokens in issued:
            assert await validator.validate_session(tokens.access_token) is None
            assert await validator.refresh_session_tokens(tokens.refresh_token) is None
        assert await validator.validate_session(kept.access_token) is not None

    @pytest.mark.asyncio
    async def test_invalidate_all_failure_is_500(self, lifecycle, make_user, store):
        user = make_user()
        store.set_available(False)

        with pytest.raises(AuthenticationError) as exc_info:
            await lifecycle.invalidate_all_sessions(user.id)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_end_session(self, lifecycle, make_user, store):
        user = make_user()
        tokens = await lifecycle.create_session(identity_of(user))

        ended = await lifecycle.end_session(tokens.access_token)

        assert ended.id == tokens.session.id
        assert tokens.session.id not in store.sessions
        assert await lifecycle.end_session(tokens.access_token) is None

    @pytest.mark.asyncio
    async def test_purge_expired(self, lifecycle, make_user, store):
        user = make_user()
        stale = await lifecycle.create_session(identity_of(user))
        fresh = await lifecycle.create_session(identity_of(user))
        store.sessions[stale.session.id].expires = datetime.now(timezone.utc) - timedelta(hours=1)

        assert await lifecycle.purge_expired() == 1
        assert set(store.sessions) == {fresh.session.id}
