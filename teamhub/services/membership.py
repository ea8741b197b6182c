"""
Membership Service.

Keeps the two copies of team membership in step: `Team.users` on the team
document and `User.teams` on each user document. Every operation writes the
team side first, then the user side(s). Writes are sequential and not
atomic; a failure part-way leaves earlier writes committed.

Fan-out (rename, delete, profile propagation) continues past per-member
failures. A member whose user document is gone is skipped with a warning;
any other failure is collected and reported as a PropagationError once
every member has been attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from teamhub.auth.capabilities import TeamRight
from teamhub.auth.context import ResourceContext
from teamhub.auth.policies import enforce
from teamhub.core.errors import (
    Conflict,
    Forbidden,
    NotFound,
    PropagationError,
    Unauthenticated,
    ValidationFailed,
)
from teamhub.core.models import (
    Invitation,
    Team,
    TeamMember,
    TeamMembership,
    TeamRole,
    User,
)
from teamhub.core.results import OperationResult
from teamhub.core.utils import normalize_email
from teamhub.services.notification import NotificationService
from teamhub.storage.repositories import TeamStore, UserStore

logger = logging.getLogger(__name__)

INVITABLE_ROLES = (TeamRole.ADMIN, TeamRole.USER)


@dataclass
class MembershipChange:
    """The acting or target user and the team after an operation."""

    user: User | None
    team: Team | None = None


def _upsert_membership(user: User, team: Team, role: TeamRole) -> None:
    membership = user.get_membership(team.id)
    if membership is None:
        user.teams.append(TeamMembership(team_id=team.id, name=team.name, role=role))
    else:
        membership.name = team.name
        membership.role = role


def _parse_role(role: TeamRole | str) -> TeamRole:
    try:
        return TeamRole(role)
    except ValueError:
        raise ValidationFailed(f"Unknown team role: {role}")


class MembershipService:
    """Team lifecycle, invitations and member management."""

    def __init__(self, users: UserStore, teams: TeamStore, notifications: NotificationService):
        self.users = users
        self.teams = teams
        self.notifications = notifications

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _fresh(self, actor: User) -> User:
        """Reload the acting user so checks see their stored memberships."""
        user = await self.users.get(actor.id)
        if user is None:
            raise Unauthenticated()
        return user

    async def _load_team(self, team_id: str) -> Team:
        team = await self.teams.get(team_id)
        if team is None:
            raise NotFound("Team not found")
        return team

    async def _fan_out(
        self,
        user_ids: Iterable[str],
        apply: Callable[[User], None],
        action: str,
    ) -> dict[str, User]:
        """Apply a change to each user document; see module docstring for failure handling."""
        updated: dict[str, User] = {}
        failed: list[str] = []

        for user_id in user_ids:
            try:
                user = await self.users.get(user_id)
                if user is None:
                    logger.warning(f"{action}: member {user_id} no longer exists, skipping")
                    continue
                apply(user)
                updated[user_id] = await self.users.save(user)
            except Exception as e:
                logger.error(f"{action}: failed to update member {user_id}: {e}")
                failed.append(user_id)

        if failed:
            raise PropagationError(
                f"{action} did not reach {len(failed)} member(s)", failed
            )
        return updated

    async def _apply_to_user(
        self, user_id: str, apply: Callable[[User], None], action: str
    ) -> User | None:
        updated = await self._fan_out([user_id], apply, action)
        return updated.get(user_id)

    # =========================================================================
    # Teams
    # =========================================================================

    async def create_team(self, actor: User, name: str) -> MembershipChange:
        """Create a team owned by the actor."""
        actor = await self._fresh(actor)
        name = name.strip()
        if not name:
            raise ValidationFailed("Team name is required")

        team = Team(
            name=name,
            owner_id=actor.id,
            users=[TeamMember(
                user_id=actor.id,
                name=actor.name,
                email=actor.email,
                role=TeamRole.OWNER,
            )],
        )
        await self.teams.create(team)

        actor.teams.append(TeamMembership(team_id=team.id, name=team.name, role=TeamRole.OWNER))
        actor = await self.users.save(actor)

        logger.info(f"Team {team.id} created by {actor.id}")
        return MembershipChange(user=actor, team=team)

    async def get_team(self, actor: User, team_id: str) -> Team:
        actor = await self._fresh(actor)
        enforce(actor, [TeamRight.GET_TEAM], ResourceContext(team_id=team_id))
        return await self._load_team(team_id)

    async def set_active_team(self, actor: User, team_id: str) -> User:
        """Point the actor's active team at one of their own teams."""
        actor = await self._fresh(actor)
        await self._load_team(team_id)
        if actor.get_membership(team_id) is None:
            raise Forbidden("User is not a part of this team")
        actor.active_team = team_id
        return await self.users.save(actor)

    async def rename_team(self, actor: User, team_id: str, name: str) -> MembershipChange:
        """Rename a team and refresh every member's copy of it."""
        actor = await self._fresh(actor)
        enforce(actor, [TeamRight.MANAGE_TEAM], ResourceContext(team_id=team_id))
        name = name.strip()
        if not name:
            raise ValidationFailed("Team name is required")

        team = await self._load_team(team_id)
        team.name = name
        team = await self.teams.save(team)

        # Team-side roles are authoritative
        roles = {member.user_id: member.role for member in team.users}
        updated = await self._fan_out(
            roles,
            lambda user: _upsert_membership(user, team, roles[user.id]),
            f"Rename of team {team.id}",
        )
        return MembershipChange(user=updated.get(actor.id, actor), team=team)

    async def delete_team(self, actor: User, team_id: str) -> User:
        """Delete a team; every member drops it and clears it as active team."""
        actor = await self._fresh(actor)
        enforce(actor, [TeamRight.DELETE_TEAM], ResourceContext(team_id=team_id))
        team = await self._load_team(team_id)
        updated = await self._delete_cascade(team)
        return updated.get(actor.id, actor)

    async def _delete_cascade(self, team: Team, skip_user_id: str | None = None) -> dict[str, User]:
        await self.teams.delete(team.id)
        logger.info(f"Team {team.id} deleted")
        member_ids = [m.user_id for m in team.users if m.user_id != skip_user_id]
        return await self._fan_out(
            member_ids,
            lambda user: user.drop_membership(team.id),
            f"Deletion of team {team.id}",
        )

    # =========================================================================
    # Invitations
    # =========================================================================

    async def invite(
        self,
        actor: User,
        team_id: str,
        email: str,
        role: TeamRole | str,
    ) -> OperationResult[Team]:
        """Invite an email address to a team. The invitation email is best-effort."""
        actor = await self._fresh(actor)
        enforce(actor, [TeamRight.MANAGE_TEAM], ResourceContext(team_id=team_id))

        role = _parse_role(role)
        if role not in INVITABLE_ROLES:
            raise ValidationFailed("Invitation role must be teamAdmin or teamUser")

        team = await self._load_team(team_id)
        email = normalize_email(email)
        if team.has_member_email(email):
            raise Conflict("Email is already a part of the team")
        if team.has_invitation_for(email):
            raise Conflict("Invitation has already been sent to this email")

        invitation = Invitation(email=email, role=role)
        team.invitations.append(invitation)
        team = await self.teams.save(team)
        logger.info(f"Invitation {invitation.id} to team {team.id} created for {email}")

        result = OperationResult(value=team)
        result.warn(await self.notifications.send_team_invitation(email, team, invitation.id))
        return result

    async def get_invitation(
        self, actor: User, team_id: str, invitation_id: str
    ) -> tuple[Team, Invitation]:
        """Look up an invitation addressed to the actor."""
        team = await self._load_team(team_id)
        invitation = team.get_invitation(invitation_id)
        if invitation is None:
            raise NotFound("Invitation not found")
        if normalize_email(actor.email) != invitation.email:
            raise Forbidden()
        return team, invitation

    async def accept_invitation(
        self, actor: User, team_id: str, invitation_id: str
    ) -> MembershipChange:
        actor = await self._fresh(actor)
        team, invitation = await self.get_invitation(actor, team_id, invitation_id)
        if team.get_member(actor.id) or actor.get_membership(team.id):
            raise Conflict("User is already a part of the team")

        team.users.append(TeamMember(
            user_id=actor.id,
            name=actor.name,
            email=actor.email,
            role=invitation.role,
        ))
        team.remove_invitation(invitation.id)
        team = await self.teams.save(team)

        actor.teams.append(TeamMembership(team_id=team.id, name=team.name, role=invitation.role))
        actor = await self.users.save(actor)

        logger.info(f"User {actor.id} joined team {team.id} as {invitation.role.value}")
        return MembershipChange(user=actor, team=team)

    async def decline_invitation(
        self, actor: User, team_id: str, invitation_id: str
    ) -> MembershipChange:
        actor = await self._fresh(actor)
        team, invitation = await self.get_invitation(actor, team_id, invitation_id)
        team.remove_invitation(invitation.id)
        team = await self.teams.save(team)
        return MembershipChange(user=actor, team=team)

    async def respond_to_invitation(
        self, actor: User, team_id: str, invitation_id: str, accepted: bool
    ) -> MembershipChange:
        if accepted:
            return await self.accept_invitation(actor, team_id, invitation_id)
        return await self.decline_invitation(actor, team_id, invitation_id)

    async def revoke_invitation(self, actor: User, team_id: str, invitation_id: str) -> Team:
        """Withdraw a pending invitation."""
        actor = await self._fresh(actor)
        enforce(actor, [TeamRight.MANAGE_TEAM], ResourceContext(team_id=team_id))
        team = await self._load_team(team_id)
        if not team.remove_invitation(invitation_id):
            raise NotFound("Invitation not found")
        return await self.teams.save(team)

    # =========================================================================
    # Members
    # =========================================================================

    async def _target_member(self, team: Team, user_id: str) -> TeamMember:
        member = team.get_member(user_id)
        if member is None:
            raise NotFound("User is not a part of the team")
        return member

    async def change_member_role(
        self,
        actor: User,
        team_id: str,
        user_id: str,
        role: TeamRole | str,
    ) -> MembershipChange:
        actor = await self._fresh(actor)
        enforce(actor, [TeamRight.MANAGE_TEAM], ResourceContext(team_id=team_id))

        role = _parse_role(role)
        if role == TeamRole.OWNER:
            raise Forbidden("Team ownership cannot be assigned")

        team = await self._load_team(team_id)
        member = await self._target_member(team, user_id)
        if member.role == TeamRole.OWNER or member.user_id == team.owner_id:
            raise Forbidden("The team owner's role cannot be changed")

        member.role = role
        team = await self.teams.save(team)

        target = await self._apply_to_user(
            user_id,
            lambda user: _upsert_membership(user, team, role),
            f"Role change in team {team.id}",
        )
        return MembershipChange(user=target, team=team)

    async def remove_member(self, actor: User, team_id: str, user_id: str) -> MembershipChange:
        actor = await self._fresh(actor)
        enforce(actor, [TeamRight.MANAGE_TEAM], ResourceContext(team_id=team_id))

        team = await self._load_team(team_id)
        member = await self._target_member(team, user_id)
        if member.role == TeamRole.OWNER or member.user_id == team.owner_id:
            raise Forbidden("The team owner cannot be removed")

        team.remove_member(user_id)
        team = await self.teams.save(team)

        target = await self._apply_to_user(
            user_id,
            lambda user: user.drop_membership(team.id),
            f"Removal from team {team.id}",
        )
        return MembershipChange(user=target, team=team)

    async def leave_team(self, actor: User, team_id: str) -> MembershipChange:
        actor = await self._fresh(actor)
        enforce(actor, [TeamRight.GET_TEAM], ResourceContext(team_id=team_id))

        team = await self._load_team(team_id)
        if team.owner_id == actor.id:
            raise Forbidden("The team owner cannot leave the team")

        team.remove_member(actor.id)
        team = await self.teams.save(team)

        actor.drop_membership(team.id)
        actor = await self.users.save(actor)
        return MembershipChange(user=actor, team=team)

    # =========================================================================
    # User lifecycle hooks
    # =========================================================================

    async def propagate_profile(self, user: User) -> None:
        """
        Copy the user's current name and email into each team's member record.

        A pending invitation for the new email in that team is dropped in the
        same write. Failures are collected and raised as PropagationError.
        """
        failed_teams: list[str] = []
        for membership in user.teams:
            try:
                team = await self.teams.get(membership.team_id)
                if team is None:
                    logger.warning(f"Profile update: team {membership.team_id} no longer exists, skipping")
                    continue
                member = team.get_member(user.id)
                if member is None:
                    logger.warning(f"Profile update: {user.id} missing from team {team.id}, skipping")
                    continue
                member.name = user.name
                member.email = user.email
                # the address now belongs to a member
                for invitation in [i for i in team.invitations if i.email == user.email]:
                    team.remove_invitation(invitation.id)
                    logger.info(f"Profile update: dropped invitation {invitation.id} in team {team.id}")
                await self.teams.save(team)
            except Exception as e:
                logger.error(f"Profile update: failed to update team {membership.team_id}: {e}")
                failed_teams.append(membership.team_id)

        if failed_teams:
            raise PropagationError(
                f"Profile update did not reach teams: {', '.join(failed_teams)}", [user.id]
            )

    async def remove_user_from_all_teams(self, user: User) -> None:
        """
        Detach a user who is being deleted.

        Teams they own are deleted with the full member cascade; from every
        other team they are removed team-side. Every team is attempted. On
        any failure a PropagationError lists the affected user ids and the
        caller keeps the user record, so a second run picks up what is left.
        """
        failed: list[str] = []
        for membership in list(user.teams):
            try:
                team = await self.teams.get(membership.team_id)
                if team is None:
                    continue
                if team.owner_id == user.id:
                    await self._delete_cascade(team, skip_user_id=user.id)
                else:
                    team.remove_member(user.id)
                    await self.teams.save(team)
            except PropagationError as e:
                failed.extend(e.failed_user_ids)
            except Exception as e:
                logger.error(f"Team cleanup: failed to detach {user.id} from {membership.team_id}: {e}")
                failed.append(user.id)

        if failed:
            raise PropagationError(
                "Team cleanup did not reach every member", list(dict.fromkeys(failed))
            )
