"""
User Service.

Account creation (local and OAuth), lookups, profile updates and deletion.
Profile changes are pushed into every team the user belongs to and into the
billing customer; deletion cascades through the user's teams.
"""

from __future__ import annotations

import logging
from typing import Any

from teamhub.auth.jwt import TokenService, TokenType, hash_password
from teamhub.core.errors import Conflict, NotFound
from teamhub.core.models import User, UserRole
from teamhub.core.results import OperationResult
from teamhub.core.utils import normalize_email, random_string
from teamhub.integrations.oauth import OAuthUserInfo
from teamhub.integrations.stripe import BillingGateway
from teamhub.services.membership import MembershipService
from teamhub.services.notification import NotificationService
from teamhub.storage.repositories import OAUTH_ID_FIELDS, UserStore

logger = logging.getLogger(__name__)

# Length of the unusable password given to accounts created through OAuth
OAUTH_PASSWORD_LENGTH = 32


class UserService:
    """User accounts and their side effects."""

    def __init__(
        self,
        users: UserStore,
        membership: MembershipService,
        gateway: BillingGateway,
        notifications: NotificationService,
        tokens: TokenService,
    ):
        self.users = users
        self.membership = membership
        self.gateway = gateway
        self.notifications = notifications
        self.tokens = tokens

    async def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole = UserRole.USER,
        **fields: Any,
    ) -> User:
        """Create a user along with their billing customer."""
        email = normalize_email(email)
        if await self.users.is_email_taken(email):
            raise Conflict("Email already taken")

        customer = await self.gateway.create_customer(name, email)
        user = User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=role,
            billing_customer_id=customer["id"],
            **fields,
        )
        await self.users.create(user)
        logger.info(f"User {user.id} created")
        return user

    async def get_or_create_oauth_user(self, info: OAuthUserInfo) -> User:
        """
        Resolve an OAuth login to an account.

        Known provider id wins; otherwise an account with the same email is
        linked (and its email marked verified); otherwise a new account is
        created with a random password.
        """
        field = OAUTH_ID_FIELDS.get(info.provider)
        if field is None:
            raise NotFound(f"Unknown provider: {info.provider}")

        user = await self.users.get_by_oauth_id(info.provider, info.provider_user_id)
        if user:
            return user

        user = await self.users.get_by_email(info.email)
        if user:
            setattr(user, field, info.provider_user_id)
            user.email_verified = True
            logger.info(f"Linked {info.provider} account to user {user.id}")
            return await self.users.save(user)

        return await self.create_user(
            name=info.name,
            email=info.email,
            password=random_string(OAUTH_PASSWORD_LENGTH),
            email_verified=info.email_verified,
            **{field: info.provider_user_id},
        )

    async def query_users(
        self,
        name: str | None = None,
        role: UserRole | str | None = None,
        sort_by: str | None = None,
        limit: int = 10,
        page: int = 1,
    ) -> dict[str, Any]:
        filters: dict[str, Any] = {}
        if name:
            filters["name"] = name
        if role:
            filters["role"] = UserRole(role).value
        return await self.users.query(filters, sort_by=sort_by, limit=limit, page=page)

    async def get_user(self, user_id: str) -> User:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def send_verification_email(self, user: User) -> str | None:
        """Issue a fresh verification token and mail it. Returns a warning on failure."""
        token = await self.tokens.issue_purpose_token(
            user.id, TokenType.VERIFY_EMAIL, email=user.email
        )
        return await self.notifications.send_verify_email(user.email, token)

    async def update_user(
        self,
        user_id: str,
        name: str | None = None,
        email: str | None = None,
        password: str | None = None,
    ) -> OperationResult[User]:
        """
        Update profile fields.

        A new email clears `email_verified` and triggers a re-verification
        email. Name and email are copied into every team and onto the
        billing customer. The user document is saved first; if copying into
        a team fails, PropagationError is raised with the new profile kept.
        """
        user = await self.get_user(user_id)

        email_changed = False
        if email is not None:
            email = normalize_email(email)
            if email != user.email:
                if await self.users.is_email_taken(email, exclude_user_id=user.id):
                    raise Conflict("Email already taken")
                user.email = email
                user.email_verified = False
                email_changed = True
        if name:
            user.name = name
        if password:
            user.password_hash = hash_password(password)

        user = await self.users.save(user)
        await self.membership.propagate_profile(user)
        await self.gateway.update_customer(
            user.billing_customer_id, {"name": user.name, "email": user.email}
        )

        result = OperationResult(value=user)
        if email_changed:
            result.warn(await self.send_verification_email(user))
        return result

    async def delete_user(self, user_id: str) -> None:
        """
        Delete a user, the teams they own, and their billing customer.

        If team cleanup raises PropagationError the user record and customer
        are kept, so the deletion can be run again.
        """
        user = await self.get_user(user_id)
        await self.membership.remove_user_from_all_teams(user)
        await self.users.delete(user.id)
        await self.gateway.delete_customer(user.billing_customer_id)
        logger.info(f"User {user.id} deleted")
