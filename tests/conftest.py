"""
Shared fixtures.

Everything runs against the in-memory store; the environment is set before
``authcore`` is imported so the module-level settings pick it up.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-session-tokens")
os.environ["STORE_BACKEND"] = "memory"

import uuid

import pytest
from fastapi.testclient import TestClient
from passlib.hash import bcrypt

from authcore.adapters.configuration.config import Settings
from authcore.adapters.outbound.persistence.memory_store import MemoryStore, memory_repository_factory
from authcore.adapters.outbound.security.token_codec import TokenCodec, TokenConfig
from authcore.application.ports.outbound import ILoginNotifier
from authcore.application.use_cases.auth_use_cases import AsyncAuthService
from authcore.application.use_cases.session_use_cases import (
    SessionLifecycleManager,
    SessionResolver,
    SessionValidator,
)
from authcore.domain.models.user_domain_model import User, UserRole
from authcore.domain.services.auth_service import LockoutService, SessionPolicy
from authcore.main import create_app
from authcore.shared.utils.background import DetachedTasks
from authcore.shared.utils.retry import RetryPolicy

TEST_SECRET = "test-secret-key-for-session-tokens"
PASSWORD = "Str0ng!Passw0rd"
# Minimum bcrypt cost, the rounds travel with the hash
PASSWORD_HASH = bcrypt.using(rounds=4).hash(PASSWORD)


class RecordingNotifier(ILoginNotifier):
    """Collects login alerts instead of sending email."""

    def __init__(self):
        self.alerts = []

    async def send_login_alert(self, email, user_agent, ip_address, session_id):
        self.alerts.append((email, user_agent, ip_address, session_id))


# ══════════════════════════════════════════════════════════════════════════════
# CORE SERVICES
# ══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def repositories(store):
    return memory_repository_factory(store)


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(secret_key=TEST_SECRET)


@pytest.fixture
def codec(token_config) -> TokenCodec:
    return TokenCodec(token_config)


@pytest.fixture
def session_policy() -> SessionPolicy:
    return SessionPolicy()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    """Same retry count as production, without the waiting."""
    return RetryPolicy(retries=3, base_delay=0)


@pytest.fixture
def background() -> DetachedTasks:
    return DetachedTasks()


@pytest.fixture
def lifecycle(codec, repositories, session_policy, retry_policy) -> SessionLifecycleManager:
    return SessionLifecycleManager(codec, repositories, session_policy, retry_policy)


@pytest.fixture
def validator(codec, repositories, background) -> SessionValidator:
    return SessionValidator(codec, repositories, background)


@pytest.fixture
def resolver(validator) -> SessionResolver:
    return SessionResolver(validator)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def auth_service(repositories, lifecycle, session_policy, retry_policy, background, notifier) -> AsyncAuthService:
    return AsyncAuthService(
        repositories,
        lifecycle,
        LockoutService(session_policy),
        retry_policy,
        background,
        notifier=notifier,
    )


@pytest.fixture
def make_user(store):
    """Add a user to the store; verified student with ``PASSWORD`` by default."""

    def _make_user(email: str = None, role: UserRole = UserRole.STUDENT, **fields) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            role=role,
            password=PASSWORD_HASH,
            is_email_verified=fields.pop("is_email_verified", True),
            **fields,
        )
        return store.add_user(user)

    return _make_user


# ══════════════════════════════════════════════════════════════════════════════
# APPLICATION
# ══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def app_factory(store):
    """Build an app bound to the test store; keyword arguments override settings."""

    def _build(**overrides):
        values = dict(
            SECRET_KEY=TEST_SECRET,
            STORE_BACKEND="memory",
            RATE_LIMIT_REQUESTS=1000,
            SESSION_VALIDATION_RETRY_DELAY_MS=0,
            DB_RETRY_BASE_DELAY_SECONDS=0,
        )
        values.update(overrides)
        return create_app(settings=Settings(**values), store=store)

    return _build


@pytest.fixture
def client(app_factory):
    with TestClient(app_factory()) as test_client:
        yield test_client
