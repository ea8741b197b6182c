"""
Auth context - the "who can do what" for each request.

This is the lightweight object passed to route handlers.
It contains everything needed to make authorization decisions.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from teamhub.auth.capabilities import (
    Right,
    TeamRight,
    UserRight,
    get_team_rights,
    get_user_rights,
    parse_right,
)
from teamhub.core.models import TeamRole, User


@dataclass(frozen=True)
class ResourceContext:
    """
    What a request targets.

    `user_id` is the subject of a user-scoped resource (e.g. the `{user_id}`
    path parameter); `team_id` the team of a team-scoped one.
    """

    user_id: str | None = None
    team_id: str | None = None


@dataclass
class AuthContext:
    """
    Authorization context for a request.

    Usage in routes:
        async def my_route(ctx: AuthContext = Depends(require("manageTeam"))):
            print(f"User {ctx.user.id} managing team {ctx.resource.team_id}")
            if ctx.can("deleteTeam"):
                # do something
    """

    user: User
    resource: ResourceContext = field(default_factory=ResourceContext)

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def team_role(self) -> TeamRole | None:
        """Caller's role in the targeted team, from their own membership list."""
        if not self.resource.team_id:
            return None
        membership = self.user.get_membership(self.resource.team_id)
        return membership.role if membership else None

    @property
    def user_rights(self) -> frozenset[UserRight]:
        return get_user_rights(self.user.role)

    @property
    def team_rights(self) -> frozenset[TeamRight]:
        return get_team_rights(self.team_role)

    @property
    def is_self(self) -> bool:
        """Is the caller the subject of the targeted user resource?"""
        return self.resource.user_id is not None and self.resource.user_id == self.user.id

    def can(self, right: Right | str) -> bool:
        """
        Check a single right in this context.

        Usage:
            if ctx.can("manageTeam"):
                # do something
        """
        parsed = parse_right(right)
        if isinstance(parsed, UserRight):
            return parsed in self.user_rights or self.is_self
        if isinstance(parsed, TeamRight):
            return parsed in self.team_rights
        return False
