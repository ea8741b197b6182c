"""
Policies - the clean interface for route authorization.

Route handlers just use:
    `ctx: AuthContext = Depends(require("manageTeam"))`

Design:
- `authorize()` is the pure decision: identity + requested rights + resource
- `enforce()` raises the matching TeamHubError when the decision is a deny
- `require()` returns a FastAPI Depends that resolves the bearer identity,
  reads `user_id` / `team_id` from the path and enforces the rights
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from teamhub.auth.capabilities import (
    Right,
    TeamRight,
    UserRight,
    get_team_rights,
    get_user_rights,
    parse_right,
)
from teamhub.auth.context import AuthContext, ResourceContext
from teamhub.auth.jwt import TokenError, TokenService, TokenType
from teamhub.core.errors import Forbidden, TeamHubError, Unauthenticated
from teamhub.core.models import User
from teamhub.integrations.sentry import set_tag, set_user
from teamhub.storage.repositories import UserStore

logger = logging.getLogger(__name__)


# Optional bearer (doesn't fail if no token; we raise our own 401)
optional_bearer = HTTPBearer(auto_error=False)


# =============================================================================
# Identity
# =============================================================================


async def resolve_identity(token: str | None, tokens: TokenService, users: UserStore) -> User:
    """
    Resolve a bearer access token to the user it was issued for.

    Raises Unauthenticated for a missing, invalid or expired token, or one
    whose user no longer exists.
    """
    if not token:
        raise Unauthenticated()
    try:
        payload = tokens.decode_token(token, expected_type=TokenType.ACCESS)
    except TokenError as e:
        logger.debug(f"Rejected access token: {e}")
        raise Unauthenticated()

    user = await users.get(payload.sub)
    if user is None:
        raise Unauthenticated()
    return user


# =============================================================================
# Decision
# =============================================================================


@dataclass
class AccessDecision:
    """Outcome of an authorization check."""

    allowed: bool
    error: type[TeamHubError] | None = None
    reason: str | None = None

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, error: type[TeamHubError], reason: str) -> "AccessDecision":
        return cls(allowed=False, error=error, reason=reason)


def authorize(
    identity: User | None,
    required: Iterable[Right | str],
    resource: ResourceContext | None = None,
) -> AccessDecision:
    """
    Decide whether `identity` holds every right in `required` on `resource`.

    User-rights come from the global role. When they fall short, the caller
    still passes if they are the subject of the user resource.

    Team-rights come from the caller's role in the resource's team, read
    from the caller's own membership list. There is no self bypass.
    """
    resource = resource or ResourceContext()

    if identity is None:
        return AccessDecision.deny(Unauthenticated, "Please authenticate")

    wanted_user_rights: set[UserRight] = set()
    wanted_team_rights: set[TeamRight] = set()
    for value in required:
        right = parse_right(value)
        if isinstance(right, UserRight):
            wanted_user_rights.add(right)
        elif isinstance(right, TeamRight):
            wanted_team_rights.add(right)
        else:
            logger.error(f"Unknown right requested: {value!r}")
            return AccessDecision.deny(Forbidden, f"Unknown right: {value}")

    if wanted_user_rights:
        granted = get_user_rights(identity.role)
        if not wanted_user_rights <= granted and resource.user_id != identity.id:
            return AccessDecision.deny(Forbidden, "Forbidden")

    if wanted_team_rights:
        if not resource.team_id:
            return AccessDecision.deny(Forbidden, "Team context required")
        membership = identity.get_membership(resource.team_id)
        if membership is None:
            return AccessDecision.deny(Forbidden, "Not a member of this team")
        if not wanted_team_rights <= get_team_rights(membership.role):
            return AccessDecision.deny(Forbidden, "Forbidden")

    return AccessDecision.allow()


def enforce(
    identity: User | None,
    required: Iterable[Right | str],
    resource: ResourceContext | None = None,
) -> None:
    """Like authorize(), but raises on deny."""
    decision = authorize(identity, required, resource)
    if not decision.allowed:
        raise decision.error(decision.reason)


# =============================================================================
# Main Interface - the require() function
# =============================================================================


def require(*rights: Right | str) -> Callable:
    """
    Require rights to access a route.

    Usage:
        @router.patch("/{team_id}")
        async def rename_team(
            team_id: str,
            ctx: AuthContext = Depends(require("manageTeam")),
        ):
            ...

    With no rights, any authenticated caller passes.
    """
    required = list(rights)

    async def dependency(
        request: Request,
        credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
    ) -> AuthContext:
        services = request.app.state.services
        token = credentials.credentials if credentials else None
        user = await resolve_identity(token, services.tokens, services.users)
        set_user(user.id, user.email)

        resource = ResourceContext(
            user_id=request.path_params.get("user_id"),
            team_id=request.path_params.get("team_id"),
        )
        if resource.team_id:
            set_tag("team_id", resource.team_id)
        enforce(user, required, resource)
        return AuthContext(user=user, resource=resource)

    return dependency


def require_auth() -> Callable:
    """Just require authentication, no specific right."""
    return require()
