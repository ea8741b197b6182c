"""
Core data models.

Users and teams each embed a copy of their side of the membership
relation. Neither copy is authoritative on its own; the membership service
writes both on every change.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from teamhub.core.utils import generate_id, utc_now


# =============================================================================
# Enums
# =============================================================================


class UserRole(str, Enum):
    """Platform-wide role."""

    USER = "user"
    ADMIN = "admin"


class TeamRole(str, Enum):
    """Role a user has within a specific team."""

    OWNER = "teamOwner"  # Creator, can delete the team
    ADMIN = "teamAdmin"  # Can manage members, invitations and settings
    USER = "teamUser"    # Read-only member


FREE_TIER = "free"


# =============================================================================
# Embedded records
# =============================================================================


class TeamMembership(BaseModel):
    """A team as seen from the user document."""

    team_id: str
    name: str
    role: TeamRole


class TeamMember(BaseModel):
    """A user as seen from the team document."""

    user_id: str
    name: str
    email: str
    role: TeamRole


class Invitation(BaseModel):
    """A pending invitation to join a team."""

    id: str = Field(default_factory=lambda: generate_id("inv"))
    email: str
    role: TeamRole
    created_at: datetime = Field(default_factory=utc_now)


class Subscription(BaseModel):
    id: str | None = None
    subscription_type: str = FREE_TIER

    @property
    def is_free(self) -> bool:
        return self.subscription_type == FREE_TIER


class PaymentMethod(BaseModel):
    id: str
    last4: str = Field(pattern=r"^\d{4}$")


# =============================================================================
# User
# =============================================================================


class User(BaseModel):
    """
    A platform account.

    `teams` mirrors `Team.users`: one entry per team the user belongs to,
    carrying the team's name and the user's role there.
    """

    id: str = Field(default_factory=lambda: generate_id("user"))
    name: str
    email: str
    password_hash: str
    role: UserRole = UserRole.USER
    email_verified: bool = False

    # OAuth links
    google_id: str | None = None
    github_id: str | None = None

    active_team: str | None = None
    teams: list[TeamMembership] = Field(default_factory=list)

    # Billing
    billing_customer_id: str
    payment_method: PaymentMethod | None = None
    subscription: Subscription = Field(default_factory=Subscription)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def get_membership(self, team_id: str) -> TeamMembership | None:
        """Find this user's membership record for a team."""
        for membership in self.teams:
            if membership.team_id == team_id:
                return membership
        return None

    def drop_membership(self, team_id: str) -> bool:
        """
        Remove the membership record for a team.

        Clears `active_team` when it pointed at that team. Returns True if
        a record was removed.
        """
        before = len(self.teams)
        self.teams = [m for m in self.teams if m.team_id != team_id]
        if self.active_team == team_id:
            self.active_team = None
        return len(self.teams) != before

    def to_public(self) -> dict[str, Any]:
        """Serialize without credentials or processor references."""
        return self.model_dump(
            mode="json",
            exclude={"password_hash", "billing_customer_id"},
        )


# =============================================================================
# Team
# =============================================================================


class Team(BaseModel):
    """
    A team of users.

    `users` always contains the owner with role teamOwner. `invitations`
    never holds an email that is already in `users`, and holds at most one
    entry per email.
    """

    id: str = Field(default_factory=lambda: generate_id("team"))
    name: str
    owner_id: str
    users: list[TeamMember] = Field(default_factory=list)
    invitations: list[Invitation] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def get_member(self, user_id: str) -> TeamMember | None:
        for member in self.users:
            if member.user_id == user_id:
                return member
        return None

    def get_invitation(self, invitation_id: str) -> Invitation | None:
        for invitation in self.invitations:
            if invitation.id == invitation_id:
                return invitation
        return None

    def has_member_email(self, email: str) -> bool:
        return any(member.email == email for member in self.users)

    def has_invitation_for(self, email: str) -> bool:
        return any(invitation.email == email for invitation in self.invitations)

    def remove_member(self, user_id: str) -> bool:
        before = len(self.users)
        self.users = [m for m in self.users if m.user_id != user_id]
        return len(self.users) != before

    def remove_invitation(self, invitation_id: str) -> bool:
        before = len(self.invitations)
        self.invitations = [i for i in self.invitations if i.id != invitation_id]
        return len(self.invitations) != before

    @property
    def owners(self) -> list[TeamMember]:
        return [m for m in self.users if m.role == TeamRole.OWNER]
