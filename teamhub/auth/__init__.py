"""
Authorization system.

Two rights universes checked by one engine:
1. User-rights come from the global role (with a self bypass)
2. Team-rights come from the caller's role inside the targeted team
3. Routes declare what they need with `Depends(require(...))`

The auth router and AuthService are imported from their modules directly.
"""

from teamhub.auth.capabilities import (
    Right,
    TeamRight,
    UserRight,
    check_rights_tables,
)
from teamhub.auth.context import AuthContext, ResourceContext
from teamhub.auth.policies import (
    AccessDecision,
    authorize,
    enforce,
    require,
    require_auth,
    resolve_identity,
)
from teamhub.auth.jwt import (
    TokenPair,
    TokenService,
    TokenType,
    hash_password,
    verify_password,
)

__all__ = [
    # Main interface
    "require",
    "require_auth",
    "authorize",
    "enforce",
    "resolve_identity",
    "AccessDecision",
    "AuthContext",
    "ResourceContext",
    # Rights
    "Right",
    "TeamRight",
    "UserRight",
    "check_rights_tables",
    # JWT
    "TokenPair",
    "TokenService",
    "TokenType",
    "hash_password",
    "verify_password",
]
