"""
Tests for rights tables and authorization decisions.
"""

import pytest

from teamhub.auth.capabilities import (
    TEAM_ROLE_RIGHTS,
    TeamRight,
    UserRight,
    check_rights_tables,
    get_team_rights,
    get_user_rights,
    parse_right,
)
from teamhub.auth.context import AuthContext, ResourceContext
from teamhub.auth.policies import authorize, enforce
from teamhub.core.errors import Forbidden, Unauthenticated
from teamhub.core.models import TeamMembership, TeamRole, User, UserRole


def _user(user_id="user_1", role=UserRole.USER, teams=None):
    return User(
        id=user_id,
        name="Test",
        email=f"{user_id}@example.com",
        password_hash="x:y",
        role=role,
        billing_customer_id="cus_1",
        teams=teams or [],
    )


def _member_of(team_id, role):
    return [TeamMembership(team_id=team_id, name="Team", role=role)]


# =============================================================================
# Tables
# =============================================================================


class TestRightsTables:
    def test_tables_are_complete(self):
        check_rights_tables()

    def test_admin_rights(self):
        assert get_user_rights(UserRole.ADMIN) == {UserRight.GET_USERS, UserRight.MANAGE_USERS}
        assert get_user_rights(UserRole.USER) == frozenset()

    def test_team_roles_are_nested(self):
        assert TEAM_ROLE_RIGHTS[TeamRole.USER] < TEAM_ROLE_RIGHTS[TeamRole.ADMIN]
        assert TEAM_ROLE_RIGHTS[TeamRole.ADMIN] < TEAM_ROLE_RIGHTS[TeamRole.OWNER]
        assert TeamRight.DELETE_TEAM in get_team_rights(TeamRole.OWNER)

    def test_no_role_no_team_rights(self):
        assert get_team_rights(None) == frozenset()

    def test_parse_right(self):
        assert parse_right("manageTeam") is TeamRight.MANAGE_TEAM
        assert parse_right("getUsers") is UserRight.GET_USERS
        assert parse_right("launchRockets") is None


# =============================================================================
# User rights
# =============================================================================


class TestUserRights:
    def test_unauthenticated(self):
        decision = authorize(None, [UserRight.GET_USERS])
        assert not decision.allowed
        assert decision.error is Unauthenticated

    def test_admin_allowed(self):
        assert authorize(_user(role=UserRole.ADMIN), [UserRight.MANAGE_USERS]).allowed

    def test_plain_user_denied(self):
        decision = authorize(_user(), [UserRight.GET_USERS], ResourceContext(user_id="user_2"))
        assert not decision.allowed
        assert decision.error is Forbidden

    def test_self_bypass(self):
        resource = ResourceContext(user_id="user_1")
        assert authorize(_user(), [UserRight.MANAGE_USERS], resource).allowed

    def test_unknown_right_denied(self):
        decision = authorize(_user(role=UserRole.ADMIN), ["launchRockets"])
        assert not decision.allowed
        assert decision.error is Forbidden

    def test_no_rights_only_needs_identity(self):
        assert authorize(_user(), []).allowed


# =============================================================================
# Team rights
# =============================================================================


class TestTeamRights:
    def test_member_can_read(self):
        user = _user(teams=_member_of("team_1", TeamRole.USER))
        assert authorize(user, [TeamRight.GET_TEAM], ResourceContext(team_id="team_1")).allowed

    def test_member_cannot_manage(self):
        user = _user(teams=_member_of("team_1", TeamRole.USER))
        decision = authorize(user, [TeamRight.MANAGE_TEAM], ResourceContext(team_id="team_1"))
        assert decision.error is Forbidden

    def test_admin_cannot_delete(self):
        user = _user(teams=_member_of("team_1", TeamRole.ADMIN))
        resource = ResourceContext(team_id="team_1")
        assert authorize(user, [TeamRight.MANAGE_TEAM], resource).allowed
        assert not authorize(user, [TeamRight.DELETE_TEAM], resource).allowed

    def test_owner_can_delete(self):
        user = _user(teams=_member_of("team_1", TeamRole.OWNER))
        assert authorize(user, [TeamRight.DELETE_TEAM], ResourceContext(team_id="team_1")).allowed

    def test_non_member_denied(self):
        user = _user(teams=_member_of("team_1", TeamRole.OWNER))
        decision = authorize(user, [TeamRight.GET_TEAM], ResourceContext(team_id="team_2"))
        assert decision.error is Forbidden

    def test_platform_admin_gets_no_team_rights(self):
        user = _user(role=UserRole.ADMIN)
        assert not authorize(user, [TeamRight.GET_TEAM], ResourceContext(team_id="team_1")).allowed

    def test_team_right_needs_team(self):
        user = _user(teams=_member_of("team_1", TeamRole.OWNER))
        assert not authorize(user, [TeamRight.GET_TEAM]).allowed

    def test_no_self_bypass_for_team_rights(self):
        user = _user(teams=_member_of("team_1", TeamRole.USER))
        resource = ResourceContext(user_id="user_1", team_id="team_1")
        assert not authorize(user, [TeamRight.MANAGE_TEAM], resource).allowed

    def test_enforce_raises(self):
        with pytest.raises(Forbidden):
            enforce(_user(), [TeamRight.GET_TEAM], ResourceContext(team_id="team_1"))
        with pytest.raises(Unauthenticated):
            enforce(None, [])


class TestAuthContext:
    def test_can(self):
        user = _user(teams=_member_of("team_1", TeamRole.ADMIN))
        ctx = AuthContext(user=user, resource=ResourceContext(user_id="user_1", team_id="team_1"))
        assert ctx.team_role == TeamRole.ADMIN
        assert ctx.is_self
        assert ctx.can("manageTeam")
        assert ctx.can(UserRight.MANAGE_USERS)
        assert not ctx.can("deleteTeam")
        assert not ctx.can("launchRockets")
