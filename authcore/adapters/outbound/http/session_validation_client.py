# authcore/adapters/outbound/http/session_validation_client.py

"""
Clients the routing guard uses to ask "who is this request?".

``LocalSessionValidationClient`` runs the validate-or-refresh protocol in the
same process; ``HttpSessionValidationClient`` posts the caller's cookies to a
``/api/session/validateSession`` endpoint, which is how a guard deployed in
front of the API talks to it.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

from authcore.adapters.inbound.api.cookies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    CookiePolicy,
)
from authcore.application.use_cases.session_use_cases import SessionResolver

logger = logging.getLogger(__name__)

VALIDATE_SESSION_PATH = "/api/session/validateSession"
VALIDATION_KEY_HEADER = "x-session-validation-key"


def derive_validation_key(settings) -> Optional[str]:
    """
    Key the guard presents on its own validation calls.

    ``SESSION_VALIDATION_KEY`` wins; otherwise an HMAC of ``SECRET_KEY``, which
    is the same on every process sharing the signing secret.
    """
    if settings.SESSION_VALIDATION_KEY:
        return settings.SESSION_VALIDATION_KEY
    if not settings.SECRET_KEY:
        return None
    return hmac.new(settings.SECRET_KEY.encode(), b"session-validation", hashlib.sha256).hexdigest()


def is_trusted_validation_call(path: str, presented_key: Optional[str], expected_key: Optional[str]) -> bool:
    """True for a validation request carrying the guard's key."""
    if path != VALIDATE_SESSION_PATH or not presented_key or not expected_key:
        return False
    return hmac.compare_digest(presented_key, expected_key)


@dataclass
class ValidationResponse:
    """
    Raw answer of the validation endpoint.

    Attributes:
        status_code: HTTP status
        payload: Decoded JSON body
        set_cookies: ``Set-Cookie`` header values to forward to the browser
    """
    status_code: int
    payload: dict
    set_cookies: List[str] = field(default_factory=list)


class LocalSessionValidationClient:

    def __init__(self, resolver: SessionResolver, cookie_policy: CookiePolicy):
        self.resolver = resolver
        self.cookie_policy = cookie_policy

    async def validate(self, cookies: Dict[str, str]) -> ValidationResponse:
        outcome = await self.resolver.resolve(
            cookies.get(ACCESS_TOKEN_COOKIE), cookies.get(REFRESH_TOKEN_COOKIE)
        )
        response = self.cookie_policy.render_outcome(outcome)
        set_cookies = [
            value.decode("latin-1")
            for key, value in response.raw_headers
            if key.lower() == b"set-cookie"
        ]
        return ValidationResponse(status_code=outcome.status_code, payload=outcome.body, set_cookies=set_cookies)


class HttpSessionValidationClient:
    """
    Calls the validation endpoint over HTTP.

    Transport failures propagate as ``httpx.TransportError`` so the guard can
    retry them. With ``validation_key`` set the calls are sent with
    ``x-session-validation-key`` and do not count against the API rate limit.
    """

    def __init__(
            self,
            base_url: str,
            timeout: float = 5.0,
            transport: Optional[httpx.AsyncBaseTransport] = None,
            validation_key: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.validation_key = validation_key

    async def validate(self, cookies: Dict[str, str]) -> ValidationResponse:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers = {"Cookie": cookie_header}
        if self.validation_key:
            headers[VALIDATION_KEY_HEADER] = self.validation_key
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(VALIDATE_SESSION_PATH, headers=headers)

        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"Validation endpoint returned non-JSON body (status {response.status_code})")
            payload = {}
        return ValidationResponse(
            status_code=response.status_code,
            payload=payload,
            set_cookies=response.headers.get_list("set-cookie"),
        )
