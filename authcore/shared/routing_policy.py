# authcore/shared/routing_policy.py

"""
Route classification table consumed by the routing guard.

The tables are plain data; :meth:`RoutingPolicy.classify` is the only logic
and it never touches the request beyond path and method.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Mapping, Optional, Pattern, Tuple

from authcore.domain.models.user_domain_model import UserRole

ALL_ROLES = frozenset(UserRole)
ADMIN_ONLY = frozenset({UserRole.ADMIN})

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def is_api_path(path: str) -> bool:
    """``/api`` itself or anything below it; ``/apiary`` is a page."""
    return path == "/api" or path.startswith("/api/")


class RouteKind(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    ROLE_RESTRICTED = "role_restricted"


@dataclass(frozen=True)
class RouteDecision:
    kind: RouteKind
    allowed_roles: Optional[FrozenSet[UserRole]] = None
    admin_api: bool = False

    @property
    def requires_auth(self) -> bool:
        return self.kind != RouteKind.PUBLIC

    def allows(self, role: Optional[str]) -> bool:
        if self.allowed_roles is None:
            return True
        try:
            return UserRole(role) in self.allowed_roles
        except ValueError:
            return False


def _compile(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p) for p in patterns)


@dataclass(frozen=True)
class RoutingPolicy:
    """
    Attributes:
        admin_api_patterns: API paths whose writes need one of ``admin_api_roles``
        admin_api_exemptions: Prefixes excluded from ``admin_api_patterns``
        always_protected: Prefix -> roles, checked before the public allow-list
        role_protected: Prefix -> roles
        public_patterns: Regex allow-list of paths served without a session
        public_prefixes: Prefixes served without a session
        authenticated_only: Prefixes needing any valid session
    """
    admin_api_patterns: Tuple[Pattern, ...] = _compile(
        r"^/api/universities$",
        r"^/api/universities/[^/]+$",
        r"^/api/universities/[^/]+/courses$",
        r"^/api/universities/[^/]+/courses/[^/]+$",
    )
    admin_api_exemptions: Tuple[str, ...] = (
        "/api/universities/apply",
        "/api/universities/upload",
    )
    admin_api_roles: FrozenSet[UserRole] = ADMIN_ONLY
    always_protected: Mapping[str, FrozenSet[UserRole]] = field(default_factory=lambda: {
        "/community/blog-management": ADMIN_ONLY,
        "/select/manage-universities": ADMIN_ONLY,
        "/select/drag-&-drop": ADMIN_ONLY,
    })
    role_protected: Mapping[str, FrozenSet[UserRole]] = field(default_factory=lambda: {
        "/accommodations": frozenset({UserRole.ADMIN, UserRole.LANDLORD}),
        "/user": ALL_ROLES,
        "/community/blog-management": ADMIN_ONLY,
        "/admin": ADMIN_ONLY,
        "/landlord": frozenset({UserRole.LANDLORD}),
    })
    public_patterns: Tuple[Pattern, ...] = _compile(
        r"^/$",
        r"^/auth/.*$",
        r"^/select/(?!manage-universities|drag-&-drop).*$",
        r"^/stay.*$",
        r"^/connect.*$",
        r"^/community/?$|^/community/[^/]+$",
        r"^/lenders.*$",
        r"^/privacy.*$",
        r"^/quizform$",
        r"^/api/auth/(?!logout-all$).*$",
        r"^/api/upload$",
        r"^/api/session/.*$",
        r"^/docs.*$",
        r"^/redoc$",
        r"^/openapi\.json$",
        r"^/health$",
        r"^/favicon\.ico$",
    )
    public_prefixes: Tuple[str, ...] = (
        "/select/explore",
        "/select/search",
        "/select/category",
    )
    authenticated_only: Tuple[str, ...] = (
        "/profile",
        "/messages",
        "/bookings",
    )

    def is_admin_api(self, path: str) -> bool:
        if any(path.startswith(exempt) for exempt in self.admin_api_exemptions):
            return False
        return any(pattern.match(path) for pattern in self.admin_api_patterns)

    def is_public(self, path: str) -> bool:
        return (any(pattern.match(path) for pattern in self.public_patterns)
                or any(path.startswith(prefix) for prefix in self.public_prefixes))

    @staticmethod
    def _match_prefix(table: Mapping[str, FrozenSet[UserRole]], path: str) -> Optional[FrozenSet[UserRole]]:
        for prefix, roles in table.items():
            if path.startswith(prefix):
                return roles
        return None

    def classify(self, path: str, method: str = "GET") -> RouteDecision:
        """
        Decide what a request to ``path`` needs.

        Order: admin API, always-protected, authenticated-only, public,
        role-protected, then authenticated by default.
        """
        if self.is_admin_api(path):
            if method.upper() in WRITE_METHODS:
                return RouteDecision(RouteKind.ROLE_RESTRICTED, self.admin_api_roles, admin_api=True)
            return RouteDecision(RouteKind.PUBLIC, admin_api=True)

        roles = self._match_prefix(self.always_protected, path)
        if roles is not None:
            return RouteDecision(RouteKind.ROLE_RESTRICTED, roles)

        if any(path.startswith(prefix) for prefix in self.authenticated_only):
            return RouteDecision(RouteKind.AUTHENTICATED)

        if self.is_public(path):
            return RouteDecision(RouteKind.PUBLIC)

        roles = self._match_prefix(self.role_protected, path)
        if roles is not None:
            return RouteDecision(RouteKind.ROLE_RESTRICTED, roles)

        return RouteDecision(RouteKind.AUTHENTICATED)


DEFAULT_ROUTING_POLICY = RoutingPolicy()
