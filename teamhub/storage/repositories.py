"""Typed repositories for users and teams over a DocumentStore."""

from __future__ import annotations

import logging
import math
from typing import Any

from teamhub.core.models import Team, User
from teamhub.core.utils import normalize_email, utc_now
from teamhub.storage.base import Collections, DocumentStore

logger = logging.getLogger(__name__)

OAUTH_ID_FIELDS = {
    "google": "google_id",
    "github": "github_id",
}


def _to_doc(model: User | Team) -> dict[str, Any]:
    return model.model_dump(mode="json")


class UserStore:
    """Repository for user documents."""

    def __init__(self, metadata: DocumentStore) -> None:
        self._metadata = metadata

    async def create(self, user: User) -> User:
        """Insert a new user."""
        user.email = normalize_email(user.email)
        await self._metadata.put(Collections.USERS, user.id, _to_doc(user))
        return user

    async def get(self, user_id: str) -> User | None:
        """Get user by ID."""
        doc = await self._metadata.get(Collections.USERS, user_id)
        return User.model_validate(doc) if doc else None

    async def get_by_email(self, email: str) -> User | None:
        """Get user by email, case-insensitively."""
        doc = await self._metadata.find_one(Collections.USERS, {"email": normalize_email(email)})
        return User.model_validate(doc) if doc else None

    async def get_by_oauth_id(self, provider: str, provider_user_id: str) -> User | None:
        """Get user by the id an OAuth provider assigned them."""
        field = OAUTH_ID_FIELDS.get(provider)
        if field is None:
            return None
        doc = await self._metadata.find_one(Collections.USERS, {field: provider_user_id})
        return User.model_validate(doc) if doc else None

    async def get_by_billing_customer(self, customer_id: str) -> User | None:
        """Get user by payment processor customer id."""
        doc = await self._metadata.find_one(Collections.USERS, {"billing_customer_id": customer_id})
        return User.model_validate(doc) if doc else None

    async def is_email_taken(self, email: str, exclude_user_id: str | None = None) -> bool:
        """Check whether another user already has this email."""
        user = await self.get_by_email(email)
        return user is not None and user.id != exclude_user_id

    async def save(self, user: User) -> User:
        """Replace the stored document with this user."""
        user.email = normalize_email(user.email)
        user.updated_at = utc_now()
        await self._metadata.put(Collections.USERS, user.id, _to_doc(user))
        return user

    async def delete(self, user_id: str) -> bool:
        """Delete a user document."""
        return await self._metadata.delete(Collections.USERS, user_id)

    async def query(
        self,
        filters: dict[str, Any] | None = None,
        sort_by: str | None = None,
        limit: int = 10,
        page: int = 1,
    ) -> dict[str, Any]:
        """
        Paginated user listing.

        `sort_by` is "field:asc" or "field:desc" (default createdAt order).
        Returns results plus page, limit, totalPages and totalResults.
        """
        limit = max(limit, 1)
        page = max(page, 1)
        docs = await self._metadata.find(Collections.USERS, filters)
        users = [User.model_validate(doc) for doc in docs]

        if sort_by:
            field, _, direction = sort_by.partition(":")
            users.sort(
                key=lambda u: str(getattr(u, field, "")),
                reverse=direction == "desc",
            )
        else:
            users.sort(key=lambda u: u.created_at)

        total = len(users)
        start = (page - 1) * limit
        return {
            "results": users[start:start + limit],
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(total / limit),
            "totalResults": total,
        }


class TeamStore:
    """Repository for team documents."""

    def __init__(self, metadata: DocumentStore) -> None:
        self._metadata = metadata

    async def create(self, team: Team) -> Team:
        """Insert a new team."""
        await self._metadata.put(Collections.TEAMS, team.id, _to_doc(team))
        return team

    async def get(self, team_id: str) -> Team | None:
        """Get team by ID."""
        doc = await self._metadata.get(Collections.TEAMS, team_id)
        return Team.model_validate(doc) if doc else None

    async def save(self, team: Team) -> Team:
        """Replace the stored document with this team."""
        team.updated_at = utc_now()
        await self._metadata.put(Collections.TEAMS, team.id, _to_doc(team))
        return team

    async def delete(self, team_id: str) -> bool:
        """Delete a team document."""
        return await self._metadata.delete(Collections.TEAMS, team_id)

    async def list_all(self) -> list[Team]:
        """Every stored team."""
        docs = await self._metadata.find(Collections.TEAMS)
        return [Team.model_validate(doc) for doc in docs]
