"""
Auth Service.

Credential flows: register, login, token refresh and logout, password
reset, email verification and OAuth sign-in. Token errors are turned into
Unauthenticated here so callers only see the domain error taxonomy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from teamhub.auth.jwt import (
    TokenError,
    TokenPair,
    TokenService,
    TokenType,
    hash_password,
    verify_password,
)
from teamhub.core.errors import NotFound, Unauthenticated
from teamhub.core.models import User
from teamhub.core.results import OperationResult
from teamhub.integrations.oauth import OAuthError, OAuthManager
from teamhub.services.notification import NotificationService
from teamhub.services.users import UserService
from teamhub.storage.repositories import UserStore

logger = logging.getLogger(__name__)


@dataclass
class AuthSession:
    """A signed-in user with their fresh tokens."""

    user: User
    tokens: TokenPair


class AuthService:
    def __init__(
        self,
        users: UserStore,
        user_service: UserService,
        tokens: TokenService,
        notifications: NotificationService,
        oauth: OAuthManager,
    ):
        self.users = users
        self.user_service = user_service
        self.tokens = tokens
        self.notifications = notifications
        self.oauth = oauth

    async def _session(self, user: User) -> AuthSession:
        return AuthSession(user=user, tokens=await self.tokens.issue_token_pair(user.id))

    async def register(self, name: str, email: str, password: str) -> OperationResult[AuthSession]:
        """Create an account and sign it in. The verification email is best-effort."""
        user = await self.user_service.create_user(name=name, email=email, password=password)
        result = OperationResult(value=await self._session(user))
        result.warn(await self.user_service.send_verification_email(user))
        return result

    async def login(self, email: str, password: str) -> AuthSession:
        user = await self.users.get_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise Unauthenticated("Incorrect email or password")
        return await self._session(user)

    async def refresh(self, refresh_token: str) -> AuthSession:
        """Rotate a refresh token into a new pair."""
        try:
            user_id, pair = await self.tokens.rotate_refresh_token(refresh_token)
        except TokenError as e:
            logger.info(f"Refresh rejected: {e}")
            raise Unauthenticated()

        user = await self.users.get(user_id)
        if user is None:
            await self.tokens.revoke_refresh_token(pair.refresh_token)
            raise Unauthenticated()
        return AuthSession(user=user, tokens=pair)

    async def logout(self, refresh_token: str) -> None:
        if not await self.tokens.revoke_refresh_token(refresh_token):
            raise NotFound("Not found")

    async def forgot_password(self, email: str) -> None:
        """Mail a reset link if the account exists. Says nothing either way."""
        user = await self.users.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return
        token = await self.tokens.issue_purpose_token(user.id, TokenType.RESET_PASSWORD)
        await self.notifications.send_reset_password(user.email, token)

    async def reset_password(self, token: str, password: str) -> None:
        try:
            user_id = await self.tokens.consume_purpose_token(token, TokenType.RESET_PASSWORD)
        except TokenError:
            raise Unauthenticated("Password reset failed")

        user = await self.users.get(user_id)
        if user is None:
            raise Unauthenticated("Password reset failed")
        user.password_hash = hash_password(password)
        await self.users.save(user)
        logger.info(f"Password reset for user {user.id}")

    async def verify_email(self, token: str) -> User:
        """Mark the address verified. The token must match the user's current email."""
        try:
            payload = self.tokens.decode_token(token, TokenType.VERIFY_EMAIL)
            user = await self.users.get(payload.sub)
            if user is None:
                raise Unauthenticated("Email verification failed")
            await self.tokens.consume_purpose_token(token, TokenType.VERIFY_EMAIL, email=user.email)
        except TokenError as e:
            logger.info(f"Email verification rejected: {e}")
            raise Unauthenticated("Email verification failed")

        user.email_verified = True
        return await self.users.save(user)

    async def send_verification_email(self, user: User) -> str | None:
        return await self.user_service.send_verification_email(user)

    # -------------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------------

    async def oauth_authorize_url(self, provider: str) -> str:
        try:
            return await self.oauth.get_authorize_url(provider)
        except OAuthError as e:
            raise NotFound(str(e))

    async def oauth_login(self, provider: str, code: str, state: str | None) -> AuthSession:
        """Finish an OAuth sign-in and open a session."""
        if not state or await self.oauth.validate_state(state) != provider:
            raise Unauthenticated("Invalid OAuth state")
        try:
            info = await self.oauth.authenticate(provider, code)
        except OAuthError as e:
            logger.warning(f"OAuth sign-in with {provider} failed: {e}")
            raise Unauthenticated("OAuth sign-in failed")

        user = await self.user_service.get_or_create_oauth_user(info)
        return await self._session(user)
