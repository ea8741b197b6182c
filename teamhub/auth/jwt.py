# =============================================================================
# Passwords and Tokens
# =============================================================================
#
# Passwords are PBKDF2 hashed. Tokens are HS256 JWTs of four types: access,
# refresh, and the single-use resetPassword / verifyEmail.
#
# Refresh and purpose tokens are recorded in the KeyValueCache under their jti;
# a token whose record is gone (consumed, revoked, expired) is rejected
# even if its signature is still valid.
#
# =============================================================================

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
import secrets
import hashlib
import logging

from pydantic import BaseModel
import jwt

from teamhub.config import Settings
from teamhub.core.utils import generate_id, utc_now
from teamhub.storage.base import KeyValueCache

logger = logging.getLogger(__name__)


# =============================================================================
# Models
# =============================================================================

class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    RESET_PASSWORD = "resetPassword"
    VERIFY_EMAIL = "verifyEmail"


class TokenPayload(BaseModel):
    """Decoded claims."""
    sub: str  # user_id
    exp: datetime
    iat: datetime
    type: TokenType
    jti: str  # key of the cache record for refresh and purpose tokens
    email: str | None = None  # address a verifyEmail token was sent to


class TokenPair(BaseModel):
    """What login and refresh hand back to the client."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires


# =============================================================================
# Password Hashing
# =============================================================================

PBKDF2_ROUNDS = 100_000


def _derive(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ROUNDS)
    return digest.hex()


def hash_password(password: str) -> str:
    """PBKDF2-SHA256 with a random salt, stored as `salt:digest`."""
    salt = secrets.token_hex(32)
    return f"{salt}:{_derive(password, salt)}"


def verify_password(password: str, password_hash: str) -> bool:
    salt, sep, digest = (password_hash or "").partition(":")
    if not sep:
        return False
    return secrets.compare_digest(_derive(password, salt), digest)


# =============================================================================
# Token Errors
# =============================================================================

class TokenError(Exception):
    """Token could not be used."""
    pass


class TokenExpiredError(TokenError):
    """Signature fine, `exp` passed."""
    pass


class TokenInvalidError(TokenError):
    """Token is invalid, malformed, revoked or already used."""
    pass


# =============================================================================
# Token Service
# =============================================================================

_JTI_PREFIX = {
    TokenType.ACCESS: "tok",
    TokenType.REFRESH: "rtok",
    TokenType.RESET_PASSWORD: "rst",
    TokenType.VERIFY_EMAIL: "vfy",
}


class TokenService:
    """Issues, validates and revokes signed tokens."""

    def __init__(self, settings: Settings, cache: KeyValueCache):
        self.settings = settings
        self.cache = cache

    def _lifetime(self, token_type: TokenType) -> timedelta:
        if token_type == TokenType.ACCESS:
            return timedelta(minutes=self.settings.jwt_access_token_expire_minutes)
        if token_type == TokenType.REFRESH:
            return timedelta(days=self.settings.jwt_refresh_token_expire_days)
        if token_type == TokenType.RESET_PASSWORD:
            return timedelta(minutes=self.settings.jwt_reset_password_expire_minutes)
        return timedelta(days=self.settings.jwt_verify_email_expire_days)

    @staticmethod
    def _record_key(token_type: TokenType, jti: str) -> str:
        return f"token:{token_type.value}:{jti}"

    def create_token(
        self,
        user_id: str,
        token_type: TokenType,
        extra_claims: dict | None = None,
    ) -> tuple[str, str]:
        """Sign a token. Returns (token, jti)."""
        now = utc_now()
        jti = generate_id(_JTI_PREFIX[token_type])
        payload = {
            "sub": user_id,
            "exp": now + self._lifetime(token_type),
            "iat": now,
            "type": token_type.value,
            "jti": jti,
            **(extra_claims or {}),
        }
        token = jwt.encode(
            payload, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm
        )
        return token, jti

    def decode_token(self, token: str, expected_type: TokenType = TokenType.ACCESS) -> TokenPayload:
        """Verify signature, expiry and type. Does not consult the cache."""
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError(f"{expected_type.value} token expired")
        except jwt.InvalidTokenError as e:
            raise TokenInvalidError(str(e)) from e

        if payload.get("type") != expected_type.value:
            raise TokenInvalidError(f"Expected {expected_type.value} token, got {payload.get('type')}")

        return TokenPayload(
            sub=payload["sub"],
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            type=payload["type"],
            jti=payload.get("jti") or "",
            email=payload.get("email"),
        )

    async def _record(self, user_id: str, token_type: TokenType, jti: str) -> None:
        ttl = int(self._lifetime(token_type).total_seconds())
        await self.cache.set(self._record_key(token_type, jti), user_id, ttl=ttl)

    # -------------------------------------------------------------------------
    # Access + refresh
    # -------------------------------------------------------------------------

    async def issue_token_pair(self, user_id: str, extra_claims: dict | None = None) -> TokenPair:
        """Create both access and refresh tokens; the refresh token is recorded."""
        access_token, _ = self.create_token(user_id, TokenType.ACCESS, extra_claims)
        refresh_token, refresh_jti = self.create_token(user_id, TokenType.REFRESH)
        await self._record(user_id, TokenType.REFRESH, refresh_jti)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.settings.jwt_access_token_expire_minutes * 60,
        )

    async def rotate_refresh_token(self, refresh_token: str) -> tuple[str, TokenPair]:
        """
        Trade a live refresh token for a new pair.

        The old refresh token is consumed. Returns (user_id, new pair).
        """
        payload = self.decode_token(refresh_token, expected_type=TokenType.REFRESH)
        key = self._record_key(TokenType.REFRESH, payload.jti)
        if await self.cache.take(key) is None:
            raise TokenInvalidError("Refresh token has been revoked")
        return payload.sub, await self.issue_token_pair(payload.sub)

    async def revoke_refresh_token(self, refresh_token: str) -> bool:
        """Revoke a refresh token. Returns False if it was not active."""
        try:
            payload = self.decode_token(refresh_token, expected_type=TokenType.REFRESH)
        except TokenError:
            return False
        return await self.cache.delete(self._record_key(TokenType.REFRESH, payload.jti))

    # -------------------------------------------------------------------------
    # Single-use purpose tokens
    # -------------------------------------------------------------------------

    async def issue_purpose_token(
        self, user_id: str, token_type: TokenType, email: str | None = None
    ) -> str:
        """
        Create a single-use token for password reset or email verification.

        Passing `email` binds the token to that address; see consume_purpose_token.
        """
        if token_type not in (TokenType.RESET_PASSWORD, TokenType.VERIFY_EMAIL):
            raise ValueError(f"{token_type.value} is not a purpose token type")
        claims = {"email": email} if email is not None else None
        token, jti = self.create_token(user_id, token_type, claims)
        await self._record(user_id, token_type, jti)
        return token

    async def consume_purpose_token(
        self, token: str, token_type: TokenType, email: str | None = None
    ) -> str:
        """
        Validate and consume a purpose token.

        Returns the user_id it was issued for. A second use fails. When
        `email` is given, a token bound to any other address is rejected and
        left unconsumed.
        """
        payload = self.decode_token(token, expected_type=token_type)
        if email is not None and payload.email != email:
            raise TokenInvalidError("Token was issued for a different address")
        if await self.cache.take(self._record_key(token_type, payload.jti)) is None:
            raise TokenInvalidError("Token has already been used")
        return payload.sub
