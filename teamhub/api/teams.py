# =============================================================================
# Teams API Routes
# =============================================================================
#
#   POST   /teams                                    - Create team
#   POST   /teams/set-active-team                    - Choose active team
#   GET    /teams/{team_id}                          - Get team        (getTeam)
#   POST   /teams/{team_id}                          - Leave team      (getTeam)
#   PATCH  /teams/{team_id}                          - Rename team     (manageTeam)
#   DELETE /teams/{team_id}                          - Delete team     (deleteTeam)
#   POST   /teams/{team_id}/invitation               - Invite          (manageTeam)
#   GET    /teams/{team_id}/invitation/{id}          - View invitation
#   POST   /teams/{team_id}/invitation/{id}          - Accept / decline
#   DELETE /teams/{team_id}/invitation/{id}          - Revoke          (manageTeam)
#   PATCH  /teams/{team_id}/user/{user_id}           - Change role     (manageTeam)
#   DELETE /teams/{team_id}/user/{user_id}           - Remove member   (manageTeam)
#
# =============================================================================

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr

from teamhub.api.dependencies import AppServices, get_services
from teamhub.auth.capabilities import TeamRight
from teamhub.auth.context import AuthContext
from teamhub.auth.policies import require, require_auth
from teamhub.core.models import Team, TeamRole
from teamhub.services.membership import MembershipChange

router = APIRouter(prefix="/teams", tags=["teams"])


# =============================================================================
# Request Models
# =============================================================================

class CreateTeamRequest(BaseModel):
    name: str


class SetActiveTeamRequest(BaseModel):
    team_id: str


class RenameTeamRequest(BaseModel):
    name: str


class InvitationRequest(BaseModel):
    email: EmailStr
    role: TeamRole


class InvitationResponseRequest(BaseModel):
    accepted: bool


class ChangeRoleRequest(BaseModel):
    role: TeamRole


def _team_body(team: Team | None) -> dict | None:
    return team.model_dump(mode="json") if team else None


def _change_body(change: MembershipChange) -> dict:
    return {
        "user": change.user.to_public() if change.user else None,
        "team": _team_body(change.team),
    }


# =============================================================================
# Teams
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_team(
    data: CreateTeamRequest,
    ctx: AuthContext = Depends(require_auth()),
    services: AppServices = Depends(get_services),
):
    change = await services.membership.create_team(ctx.user, data.name)
    return _change_body(change)


@router.post("/set-active-team")
async def set_active_team(
    data: SetActiveTeamRequest,
    ctx: AuthContext = Depends(require_auth()),
    services: AppServices = Depends(get_services),
):
    user = await services.membership.set_active_team(ctx.user, data.team_id)
    return user.to_public()


@router.get("/{team_id}")
async def get_team(
    team_id: str,
    ctx: AuthContext = Depends(require(TeamRight.GET_TEAM)),
    services: AppServices = Depends(get_services),
):
    team = await services.membership.get_team(ctx.user, team_id)
    return _team_body(team)


@router.post("/{team_id}")
async def leave_team(
    team_id: str,
    ctx: AuthContext = Depends(require(TeamRight.GET_TEAM)),
    services: AppServices = Depends(get_services),
):
    change = await services.membership.leave_team(ctx.user, team_id)
    return _change_body(change)


@router.patch("/{team_id}")
async def rename_team(
    team_id: str,
    data: RenameTeamRequest,
    ctx: AuthContext = Depends(require(TeamRight.MANAGE_TEAM)),
    services: AppServices = Depends(get_services),
):
    change = await services.membership.rename_team(ctx.user, team_id, data.name)
    return _change_body(change)


@router.delete("/{team_id}")
async def delete_team(
    team_id: str,
    ctx: AuthContext = Depends(require(TeamRight.DELETE_TEAM)),
    services: AppServices = Depends(get_services),
):
    user = await services.membership.delete_team(ctx.user, team_id)
    return user.to_public()


# =============================================================================
# Invitations
# =============================================================================

@router.post("/{team_id}/invitation")
async def create_invitation(
    team_id: str,
    data: InvitationRequest,
    ctx: AuthContext = Depends(require(TeamRight.MANAGE_TEAM)),
    services: AppServices = Depends(get_services),
):
    result = await services.membership.invite(ctx.user, team_id, data.email, data.role)
    return {"team": _team_body(result.value), "warnings": result.warnings}


@router.get("/{team_id}/invitation/{invitation_id}")
async def get_invitation(
    team_id: str,
    invitation_id: str,
    ctx: AuthContext = Depends(require_auth()),
    services: AppServices = Depends(get_services),
):
    team, invitation = await services.membership.get_invitation(ctx.user, team_id, invitation_id)
    return {"team_name": team.name, "invitation": invitation.model_dump(mode="json")}


@router.post("/{team_id}/invitation/{invitation_id}")
async def respond_to_invitation(
    team_id: str,
    invitation_id: str,
    data: InvitationResponseRequest,
    ctx: AuthContext = Depends(require_auth()),
    services: AppServices = Depends(get_services),
):
    change = await services.membership.respond_to_invitation(
        ctx.user, team_id, invitation_id, data.accepted
    )
    return _change_body(change)


@router.delete("/{team_id}/invitation/{invitation_id}")
async def revoke_invitation(
    team_id: str,
    invitation_id: str,
    ctx: AuthContext = Depends(require(TeamRight.MANAGE_TEAM)),
    services: AppServices = Depends(get_services),
):
    team = await services.membership.revoke_invitation(ctx.user, team_id, invitation_id)
    return _team_body(team)


# =============================================================================
# Members
# =============================================================================

@router.patch("/{team_id}/user/{user_id}")
async def change_member_role(
    team_id: str,
    user_id: str,
    data: ChangeRoleRequest,
    ctx: AuthContext = Depends(require(TeamRight.MANAGE_TEAM)),
    services: AppServices = Depends(get_services),
):
    change = await services.membership.change_member_role(ctx.user, team_id, user_id, data.role)
    return _change_body(change)


@router.delete("/{team_id}/user/{user_id}")
async def remove_member(
    team_id: str,
    user_id: str,
    ctx: AuthContext = Depends(require(TeamRight.MANAGE_TEAM)),
    services: AppServices = Depends(get_services),
):
    change = await services.membership.remove_member(ctx.user, team_id, user_id)
    return _change_body(change)
