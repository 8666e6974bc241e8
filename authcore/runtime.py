# authcore/runtime.py

"""
Wiring of the session core.

``AuthRuntime`` is built once per application (see ``main.create_app``) and
hung on ``app.state.runtime``; endpoints and middlewares pull their services
from it.
"""

import logging
from typing import Optional

from authcore.adapters.configuration.config import Settings, settings as default_settings
from authcore.adapters.inbound.api.cookies import CookiePolicy
from authcore.adapters.outbound.http.session_validation_client import (
    HttpSessionValidationClient,
    LocalSessionValidationClient,
    derive_validation_key,
)
from authcore.adapters.outbound.notifications.email_notifier import SmtpLoginNotifier
from authcore.adapters.outbound.persistence.memory_store import MemoryStore, memory_repository_factory
from authcore.adapters.outbound.security.token_codec import TokenCodec, TokenConfig
from authcore.application.use_cases.auth_use_cases import AsyncAuthService
from authcore.application.use_cases.session_use_cases import (
    SessionLifecycleManager,
    SessionResolver,
    SessionValidator,
)
from authcore.domain.services.auth_service import LockoutService, SessionPolicy
from authcore.shared.middleware.rate_limiting_middleware import SlidingWindowRateLimiter
from authcore.shared.routing_policy import DEFAULT_ROUTING_POLICY, RoutingPolicy
from authcore.shared.utils.background import DetachedTasks
from authcore.shared.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


class AuthRuntime:
    """Holds the service instances of one application."""

    def __init__(
            self,
            settings: Optional[Settings] = None,
            store: Optional[MemoryStore] = None,
            routing_policy: RoutingPolicy = DEFAULT_ROUTING_POLICY,
    ):
        self.settings = settings or default_settings
        logger.info(f"Runtime starting with store backend '{self.settings.STORE_BACKEND}'")

        if store is not None or self.settings.STORE_BACKEND == "memory":
            self.store = store or MemoryStore()
            self.repositories = memory_repository_factory(self.store)
        else:
            from authcore.adapters.outbound.persistence.repositories import open_database_repositories
            self.store = None
            self.repositories = open_database_repositories

        if not self.settings.SECRET_KEY:
            logger.warning("SECRET_KEY is not set: every token operation will fail")

        self.token_config = TokenConfig.from_settings(self.settings)
        self.codec = TokenCodec(self.token_config)
        self.session_policy = SessionPolicy.from_settings(self.settings)
        self.retry_policy = RetryPolicy.from_settings(self.settings)
        self.cookie_policy = CookiePolicy.from_settings(self.settings)
        self.background = DetachedTasks()

        self.lifecycle = SessionLifecycleManager(
            self.codec, self.repositories, self.session_policy, self.retry_policy
        )
        self.validator = SessionValidator(self.codec, self.repositories, self.background)
        self.resolver = SessionResolver(self.validator)
        self.notifier = SmtpLoginNotifier.from_settings(self.settings)
        self.auth_service = AsyncAuthService(
            self.repositories,
            self.lifecycle,
            LockoutService(self.session_policy),
            self.retry_policy,
            self.background,
            notifier=self.notifier,
        )

        self.rate_limiter = SlidingWindowRateLimiter.from_settings(self.settings)
        self.routing_policy = routing_policy
        self.validation_key = derive_validation_key(self.settings)
        if self.settings.SESSION_VALIDATION_URL:
            self.validation_client = HttpSessionValidationClient(
                self.settings.SESSION_VALIDATION_URL, validation_key=self.validation_key
            )
        else:
            self.validation_client = LocalSessionValidationClient(self.resolver, self.cookie_policy)

    @property
    def uses_database(self) -> bool:
        return self.store is None

    async def shutdown(self) -> None:
        await self.background.drain()
        if self.uses_database:
            from authcore.adapters.outbound.persistence.database import dispose_engine
            await dispose_engine()
