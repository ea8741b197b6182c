# =============================================================================
# OAuth Integration (Google, GitHub)
# =============================================================================
#
# Google client:
#   console.cloud.google.com/apis/credentials, type "Web application",
#   redirect URI {CLIENT_URL}/auth/google/callback
#   GOOGLE_OAUTH_CLIENT_ID / GOOGLE_OAUTH_CLIENT_SECRET
#
# GitHub app:
#   github.com/settings/developers, callback
#   {CLIENT_URL}/auth/github/callback
#   GITHUB_OAUTH_CLIENT_ID / GITHUB_OAUTH_CLIENT_SECRET
#
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from teamhub.config import Settings, get_settings
from teamhub.core.utils import generate_id
from teamhub.storage.base import KeyValueCache

logger = logging.getLogger(__name__)

# State tokens live this long between authorize and callback
STATE_TTL_SECONDS = 600


# =============================================================================
# Models
# =============================================================================

class OAuthUserInfo(BaseModel):
    """Identity a provider returned for the signed-in account."""
    provider: str  # "google", "github"
    provider_user_id: str
    email: str
    name: str
    email_verified: bool = True


class OAuthError(Exception):
    """Provider rejected the code or could not be reached."""
    pass


# =============================================================================
# Shared flow
# =============================================================================

class OAuthProvider:
    """Authorization-code flow common to both providers."""

    name: str = ""
    AUTHORIZE_URL: str = ""
    TOKEN_URL: str = ""
    SCOPE: str = ""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def client_id(self) -> str:
        return self.settings.oauth_credentials(self.name)[0]

    @property
    def client_secret(self) -> str:
        return self.settings.oauth_credentials(self.name)[1]

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def redirect_uri(self) -> str:
        return f"{self.settings.client_url}/auth/{self.name}/callback"

    def extra_authorize_params(self) -> dict[str, str]:
        return {}

    def get_authorize_url(self, state: str | None = None) -> str:
        """URL to send the user to for sign-in."""
        if not self.is_configured:
            raise OAuthError(f"{self.name} OAuth not configured")

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.SCOPE,
            **self.extra_authorize_params(),
        }
        if state:
            params["state"] = state

        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Trade the callback code for provider tokens."""
        if not self.is_configured:
            raise OAuthError(f"{self.name} OAuth not configured")

        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
            )

        if response.status_code != 200:
            logger.error(f"{self.name} token exchange failed: {response.text}")
            raise OAuthError(f"Token exchange failed: {response.status_code}")

        data = response.json()
        if "access_token" not in data:
            # GitHub reports errors with a 200
            raise OAuthError(data.get("error_description", "Token exchange failed"))
        return data

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        raise NotImplementedError

    async def authenticate(self, code: str) -> OAuthUserInfo:
        """Code in, provider identity out."""
        tokens = await self.exchange_code(code)
        return await self.get_user_info(tokens["access_token"])


# =============================================================================
# Google OAuth
# =============================================================================

class GoogleOAuth(OAuthProvider):
    """Google sign-in via the v2 userinfo endpoint."""

    name = "google"
    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
    SCOPE = "openid email profile"

    def extra_authorize_params(self) -> dict[str, str]:
        return {"access_type": "offline", "prompt": "select_account"}

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                self.USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )

        if response.status_code != 200:
            logger.error(f"Google userinfo failed: {response.text}")
            raise OAuthError(f"Failed to get user info: {response.status_code}")

        data = response.json()
        return OAuthUserInfo(
            provider=self.name,
            provider_user_id=str(data["id"]),
            email=data["email"],
            name=data.get("name") or data["email"].split("@")[0],
            email_verified=data.get("verified_email", True),
        )


# =============================================================================
# GitHub OAuth
# =============================================================================

class GitHubOAuth(OAuthProvider):
    """GitHub OAuth app implementation."""

    name = "github"
    AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
    TOKEN_URL = "https://github.com/login/oauth/access_token"
    USER_URL = "https://api.github.com/user"
    EMAILS_URL = "https://api.github.com/user/emails"
    SCOPE = "read:user user:email"

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        }
        async with httpx.AsyncClient() as client:
            response = await client.get(self.USER_URL, headers=headers)
            if response.status_code != 200:
                logger.error(f"GitHub user lookup failed: {response.text}")
                raise OAuthError(f"Failed to get user info: {response.status_code}")
            data = response.json()

            # The profile email is empty when the user keeps it private
            emails = await client.get(self.EMAILS_URL, headers=headers)
            if emails.status_code != 200:
                raise OAuthError(f"Failed to get user emails: {emails.status_code}")

        primary = next(
            (e for e in emails.json() if e.get("primary") and e.get("verified")),
            None,
        )
        if primary is None:
            raise OAuthError("GitHub account has no verified primary email")

        return OAuthUserInfo(
            provider=self.name,
            provider_user_id=str(data["id"]),
            email=primary["email"],
            name=data.get("name") or data.get("login", ""),
            email_verified=True,
        )


# =============================================================================
# OAuth Manager
# =============================================================================

class OAuthManager:
    """Configured providers plus single-use CSRF state."""

    def __init__(self, cache: KeyValueCache, settings: Settings | None = None):
        settings = settings or get_settings()
        self.providers: dict[str, OAuthProvider] = {
            "google": GoogleOAuth(settings),
            "github": GitHubOAuth(settings),
        }
        # State tokens for CSRF protection
        self.cache = cache

    def get_available_providers(self) -> list[str]:
        """Names of providers with credentials set."""
        return [name for name, p in self.providers.items() if p.is_configured]

    def _provider(self, name: str) -> OAuthProvider:
        provider = self.providers.get(name)
        if provider is None:
            raise OAuthError(f"Unknown provider: {name}")
        return provider

    async def create_state(self, provider: str) -> str:
        """Issue a state value bound to one provider."""
        state = generate_id("oauth")
        await self.cache.set(f"oauth:state:{state}", provider, ttl=STATE_TTL_SECONDS)
        return state

    async def validate_state(self, state: str) -> str | None:
        """Consume a state token. Returns the provider it was issued for, if still valid."""
        return await self.cache.take(f"oauth:state:{state}")

    async def get_authorize_url(self, provider: str) -> str:
        """Sign-in URL for a provider, with fresh state."""
        oauth = self._provider(provider)
        state = await self.create_state(provider)
        return oauth.get_authorize_url(state)

    async def authenticate(self, provider: str, code: str) -> OAuthUserInfo:
        return await self._provider(provider).authenticate(code)
