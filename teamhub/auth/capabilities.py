"""
Rights and role-to-rights tables.

This defines WHAT each role grants, not HOW we check it.
The actual checking happens in policies.py.

There are two disjoint universes: user-rights are granted by the global
role and apply to user resources; team-rights are granted by the caller's
role inside one team and apply to that team.
"""

from __future__ import annotations

from enum import Enum

from teamhub.core.models import TeamRole, UserRole


class UserRight(str, Enum):
    """Platform-wide rights over user resources."""

    GET_USERS = "getUsers"
    MANAGE_USERS = "manageUsers"


class TeamRight(str, Enum):
    """Rights over a single team."""

    GET_TEAM = "getTeam"
    MANAGE_TEAM = "manageTeam"
    DELETE_TEAM = "deleteTeam"


Right = UserRight | TeamRight


# =============================================================================
# Rights Mappings
# =============================================================================


USER_ROLE_RIGHTS: dict[UserRole, frozenset[UserRight]] = {
    UserRole.USER: frozenset(),
    UserRole.ADMIN: frozenset({
        UserRight.GET_USERS,
        UserRight.MANAGE_USERS,
    }),
}


TEAM_ROLE_RIGHTS: dict[TeamRole, frozenset[TeamRight]] = {
    TeamRole.USER: frozenset({
        TeamRight.GET_TEAM,
    }),
    TeamRole.ADMIN: frozenset({
        TeamRight.GET_TEAM,
        TeamRight.MANAGE_TEAM,
    }),
    TeamRole.OWNER: frozenset({
        TeamRight.GET_TEAM,
        TeamRight.MANAGE_TEAM,
        TeamRight.DELETE_TEAM,
    }),
}


class RightsTableError(Exception):
    """The rights tables are incomplete or mix universes."""
    pass


def check_rights_tables() -> None:
    """
    Verify both tables cover every role and only grant rights from their
    own universe. Run once at startup.
    """
    missing_user_roles = set(UserRole) - set(USER_ROLE_RIGHTS)
    if missing_user_roles:
        raise RightsTableError(f"No rights defined for user roles: {sorted(missing_user_roles)}")

    missing_team_roles = set(TeamRole) - set(TEAM_ROLE_RIGHTS)
    if missing_team_roles:
        raise RightsTableError(f"No rights defined for team roles: {sorted(missing_team_roles)}")

    for role, rights in USER_ROLE_RIGHTS.items():
        if not all(isinstance(r, UserRight) for r in rights):
            raise RightsTableError(f"User role {role.value} grants a non user-right")

    for role, rights in TEAM_ROLE_RIGHTS.items():
        if not all(isinstance(r, TeamRight) for r in rights):
            raise RightsTableError(f"Team role {role.value} grants a non team-right")


def parse_right(value: Right | str) -> Right | None:
    """Resolve a right name to its enum member, or None if it is in neither universe."""
    if isinstance(value, (UserRight, TeamRight)):
        return value
    for universe in (UserRight, TeamRight):
        try:
            return universe(value)
        except ValueError:
            continue
    return None


def get_user_rights(role: UserRole) -> frozenset[UserRight]:
    """Rights granted platform-wide by a global role."""
    return USER_ROLE_RIGHTS.get(role, frozenset())


def get_team_rights(role: TeamRole | None) -> frozenset[TeamRight]:
    """Rights granted inside a team by a team role."""
    if role is None:
        return frozenset()
    return TEAM_ROLE_RIGHTS.get(role, frozenset())
