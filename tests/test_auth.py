"""
Tests for tokens and credential flows.
"""

import pytest

from teamhub.auth.jwt import (
    TokenExpiredError,
    TokenInvalidError,
    TokenService,
    TokenType,
    hash_password,
    verify_password,
)
from teamhub.auth.policies import resolve_identity
from teamhub.core.errors import Conflict, NotFound, Unauthenticated
from teamhub.integrations.oauth import OAuthUserInfo
from teamhub.storage.local import InMemoryKeyValueCache


# =============================================================================
# Passwords
# =============================================================================


def test_password_hashing():
    hashed = hash_password("password1")
    assert hashed != "password1"
    assert verify_password("password1", hashed)
    assert not verify_password("password2", hashed)
    assert not verify_password("password1", "not-a-hash")


# =============================================================================
# Tokens
# =============================================================================


@pytest.fixture
def tokens(settings):
    return TokenService(settings, InMemoryKeyValueCache())


class TestTokenService:
    @pytest.mark.asyncio
    async def test_pair_types(self, tokens):
        pair = await tokens.issue_token_pair("user_1")

        assert tokens.decode_token(pair.access_token).sub == "user_1"
        assert tokens.decode_token(pair.refresh_token, TokenType.REFRESH).sub == "user_1"
        with pytest.raises(TokenInvalidError):
            tokens.decode_token(pair.refresh_token, TokenType.ACCESS)

    def test_garbage_token(self, tokens):
        with pytest.raises(TokenInvalidError):
            tokens.decode_token("not.a.jwt")

    def test_expired_token(self, settings):
        expired = TokenService(
            settings.model_copy(update={"jwt_access_token_expire_minutes": -1}),
            InMemoryKeyValueCache(),
        )
        token, _ = expired.create_token("user_1", TokenType.ACCESS)
        with pytest.raises(TokenExpiredError):
            expired.decode_token(token)

    @pytest.mark.asyncio
    async def test_refresh_rotation(self, tokens):
        pair = await tokens.issue_token_pair("user_1")

        user_id, new_pair = await tokens.rotate_refresh_token(pair.refresh_token)

        assert user_id == "user_1"
        assert new_pair.refresh_token != pair.refresh_token
        with pytest.raises(TokenInvalidError):
            await tokens.rotate_refresh_token(pair.refresh_token)

    @pytest.mark.asyncio
    async def test_revoke(self, tokens):
        pair = await tokens.issue_token_pair("user_1")
        assert await tokens.revoke_refresh_token(pair.refresh_token)
        assert not await tokens.revoke_refresh_token(pair.refresh_token)
        assert not await tokens.revoke_refresh_token("garbage")

    @pytest.mark.asyncio
    async def test_purpose_token_single_use(self, tokens):
        token = await tokens.issue_purpose_token("user_1", TokenType.RESET_PASSWORD)

        with pytest.raises(TokenInvalidError):
            await tokens.consume_purpose_token(token, TokenType.VERIFY_EMAIL)
        assert await tokens.consume_purpose_token(token, TokenType.RESET_PASSWORD) == "user_1"
        with pytest.raises(TokenInvalidError):
            await tokens.consume_purpose_token(token, TokenType.RESET_PASSWORD)

    @pytest.mark.asyncio
    async def test_purpose_token_address(self, tokens):
        token = await tokens.issue_purpose_token("user_1", TokenType.VERIFY_EMAIL, email="a@example.com")

        assert tokens.decode_token(token, TokenType.VERIFY_EMAIL).email == "a@example.com"
        with pytest.raises(TokenInvalidError):
            await tokens.consume_purpose_token(token, TokenType.VERIFY_EMAIL, email="b@example.com")
        assert await tokens.consume_purpose_token(token, TokenType.VERIFY_EMAIL, email="a@example.com") == "user_1"

    @pytest.mark.asyncio
    async def test_access_is_not_a_purpose(self, tokens):
        with pytest.raises(ValueError):
            await tokens.issue_purpose_token("user_1", TokenType.ACCESS)


# =============================================================================
# Identity
# =============================================================================


class TestResolveIdentity:
    @pytest.mark.asyncio
    async def test_resolves_user(self, services, make_user):
        user = await make_user("Ana")
        pair = await services.tokens.issue_token_pair(user.id)

        identity = await resolve_identity(pair.access_token, services.tokens, services.users)
        assert identity.id == user.id

    @pytest.mark.asyncio
    async def test_rejects_missing_and_deleted(self, services, make_user):
        user = await make_user("Ana")
        pair = await services.tokens.issue_token_pair(user.id)
        await services.users.delete(user.id)

        with pytest.raises(Unauthenticated):
            await resolve_identity(None, services.tokens, services.users)
        with pytest.raises(Unauthenticated):
            await resolve_identity(pair.access_token, services.tokens, services.users)

    @pytest.mark.asyncio
    async def test_rejects_refresh_token(self, services, make_user):
        user = await make_user("Ana")
        pair = await services.tokens.issue_token_pair(user.id)
        with pytest.raises(Unauthenticated):
            await resolve_identity(pair.refresh_token, services.tokens, services.users)


# =============================================================================
# Auth flows
# =============================================================================


class TestAuthService:
    @pytest.mark.asyncio
    async def test_register_sends_verification(self, services, sink):
        result = await services.auth.register("Ana", "ana@example.com", "password1")

        assert result.ok
        assert result.value.user.email == "ana@example.com"
        assert sink.sent[-1]["subject"] == "Verify email"

        user = await services.auth.verify_email(sink.last_token())
        assert user.email_verified
        with pytest.raises(Unauthenticated):
            await services.auth.verify_email(sink.last_token())

    @pytest.mark.asyncio
    async def test_register_duplicate(self, services):
        await services.auth.register("Ana", "ana@example.com", "password1")
        with pytest.raises(Conflict):
            await services.auth.register("Ana", "ana@example.com", "password1")

    @pytest.mark.asyncio
    async def test_register_survives_email_failure(self, services, sink):
        sink.fail = True
        result = await services.auth.register("Ana", "ana@example.com", "password1")
        assert result.value.user.id
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_login(self, services, make_user):
        await make_user("Ana")

        session = await services.auth.login("ANA@example.com", "password1")
        assert session.user.name == "Ana"

        with pytest.raises(Unauthenticated, match="Incorrect email or password"):
            await services.auth.login("ana@example.com", "wrong-password1")
        with pytest.raises(Unauthenticated):
            await services.auth.login("nobody@example.com", "password1")

    @pytest.mark.asyncio
    async def test_refresh_and_logout(self, services, make_user):
        await make_user("Ana")
        session = await services.auth.login("ana@example.com", "password1")

        refreshed = await services.auth.refresh(session.tokens.refresh_token)
        with pytest.raises(Unauthenticated):
            await services.auth.refresh(session.tokens.refresh_token)

        await services.auth.logout(refreshed.tokens.refresh_token)
        with pytest.raises(NotFound):
            await services.auth.logout(refreshed.tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_password_reset(self, services, make_user, sink):
        await make_user("Ana")

        await services.auth.forgot_password("ana@example.com")
        assert "/auth/reset-password?token=" in sink.sent[-1]["body"]
        token = sink.last_token()

        await services.auth.reset_password(token, "brandnew99")
        session = await services.auth.login("ana@example.com", "brandnew99")
        assert session.user.name == "Ana"

        with pytest.raises(Unauthenticated, match="Password reset failed"):
            await services.auth.reset_password(token, "another99")

    @pytest.mark.asyncio
    async def test_resend_verification(self, services, make_user, sink):
        user = await make_user("Ana")

        assert await services.auth.send_verification_email(user) is None
        assert sink.sent[-1]["subject"] == "Verify email"

        verified = await services.auth.verify_email(sink.last_token())
        assert verified.id == user.id
        assert verified.email_verified

    @pytest.mark.asyncio
    async def test_verification_is_bound_to_address(self, services, sink):
        result = await services.auth.register("Ann", "ann@example.com", "password1")
        user = result.value.user
        old_token = sink.last_token()

        await services.user_service.update_user(user.id, email="other@example.com")
        new_token = sink.last_token()

        with pytest.raises(Unauthenticated, match="Email verification failed"):
            await services.auth.verify_email(old_token)
        assert not (await services.users.get(user.id)).email_verified

        verified = await services.auth.verify_email(new_token)
        assert verified.email == "other@example.com"
        assert verified.email_verified

    @pytest.mark.asyncio
    async def test_forgot_password_unknown_email(self, services, sink):
        await services.auth.forgot_password("nobody@example.com")
        assert sink.sent == []


class TestOAuthLogin:
    @pytest.mark.asyncio
    async def test_no_providers_configured(self, services):
        assert services.auth.oauth.get_available_providers() == []
        with pytest.raises(NotFound):
            await services.auth.oauth_authorize_url("myspace")

    @pytest.mark.asyncio
    async def test_state_must_match(self, services):
        state = await services.auth.oauth.create_state("github")

        with pytest.raises(Unauthenticated):
            await services.auth.oauth_login("google", "code", state)
        with pytest.raises(Unauthenticated):
            await services.auth.oauth_login("google", "code", None)

    @pytest.mark.asyncio
    async def test_sign_in(self, services, monkeypatch):
        async def fake_authenticate(provider, code):
            return OAuthUserInfo(
                provider=provider,
                provider_user_id="g-1",
                email="ana@example.com",
                name="Ana",
                email_verified=True,
            )

        monkeypatch.setattr(services.auth.oauth, "authenticate", fake_authenticate)
        state = await services.auth.oauth.create_state("google")

        session = await services.auth.oauth_login("google", "code", state)

        assert session.user.google_id == "g-1"
        assert session.tokens.access_token
        with pytest.raises(Unauthenticated):
            await services.auth.oauth_login("google", "code", state)
