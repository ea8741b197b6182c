# =============================================================================
# Auth API Routes
# =============================================================================
#
# Endpoints:
#   POST /auth/register                - Create account
#   POST /auth/login                   - Get tokens
#   POST /auth/refresh-tokens          - Rotate refresh token
#   POST /auth/logout                  - Revoke refresh token
#   GET  /auth/me                      - Get current user
#   POST /auth/forgot-password         - Request password reset
#   POST /auth/reset-password?token=   - Reset password with token
#   POST /auth/verify-email?token=     - Verify email address
#   POST /auth/send-verification-email - Re-send verification email
#
# OAuth:
#   GET  /auth/providers            - List available OAuth providers
#   GET  /auth/{provider}/authorize - Get OAuth redirect URL
#   POST /auth/{provider}/callback  - Complete OAuth flow
#
# =============================================================================

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, EmailStr, field_validator

from teamhub.api.dependencies import AppServices, get_services
from teamhub.auth.context import AuthContext
from teamhub.auth.policies import require_auth
from teamhub.auth.service import AuthSession
from teamhub.core.utils import validate_password

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# Request/Response Models
# =============================================================================

class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password(v)


class OAuthCallbackRequest(BaseModel):
    code: str
    state: str | None = None


def _session_body(session: AuthSession) -> dict:
    return {"user": session.user.to_public(), "tokens": session.tokens.model_dump()}


# =============================================================================
# Public Endpoints
# =============================================================================

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, services: AppServices = Depends(get_services)):
    """
    Create a new account.

    Returns the user and a token pair; the verification email goes out
    separately and may fail without failing the registration.
    """
    result = await services.auth.register(data.name, data.email, data.password)
    return {**_session_body(result.value), "warnings": result.warnings}


@router.post("/login")
async def login(data: LoginRequest, services: AppServices = Depends(get_services)):
    session = await services.auth.login(data.email, data.password)
    return _session_body(session)


@router.post("/refresh-tokens")
async def refresh_tokens(data: RefreshRequest, services: AppServices = Depends(get_services)):
    """Exchange a refresh token for a new pair. The old one stops working."""
    session = await services.auth.refresh(data.refresh_token)
    return _session_body(session)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(data: RefreshRequest, services: AppServices = Depends(get_services)):
    await services.auth.logout(data.refresh_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/forgot-password", status_code=status.HTTP_204_NO_CONTENT)
async def forgot_password(data: ForgotPasswordRequest, services: AppServices = Depends(get_services)):
    """
    Request password reset email.

    Always succeeds to prevent email enumeration.
    """
    await services.auth.forgot_password(data.email)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/reset-password", status_code=status.HTTP_204_NO_CONTENT)
async def reset_password(
    token: str,
    data: ResetPasswordRequest,
    services: AppServices = Depends(get_services),
):
    await services.auth.reset_password(token, data.password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/verify-email")
async def verify_email(token: str, services: AppServices = Depends(get_services)):
    user = await services.auth.verify_email(token)
    return {"email_verified": user.email_verified}


# =============================================================================
# Protected Endpoints
# =============================================================================

@router.get("/me")
async def get_current_user(ctx: AuthContext = Depends(require_auth())):
    return ctx.user.to_public()


@router.post("/send-verification-email")
async def send_verification_email(
    ctx: AuthContext = Depends(require_auth()),
    services: AppServices = Depends(get_services),
):
    warning = await services.auth.send_verification_email(ctx.user)
    return {"warnings": [warning] if warning else []}


# =============================================================================
# OAuth Endpoints
# =============================================================================

@router.get("/providers")
async def list_oauth_providers(services: AppServices = Depends(get_services)):
    """Only returns providers that are properly configured."""
    return {"providers": services.auth.oauth.get_available_providers()}


@router.get("/{provider}/authorize")
async def oauth_authorize(provider: str, services: AppServices = Depends(get_services)):
    """
    Get the OAuth authorization URL.

    Redirect the user to this URL to start the OAuth flow.
    """
    url = await services.auth.oauth_authorize_url(provider)
    return {"authorize_url": url}


@router.post("/{provider}/callback")
async def oauth_callback(
    provider: str,
    data: OAuthCallbackRequest,
    services: AppServices = Depends(get_services),
):
    """Exchange the authorization code for user info and return tokens."""
    session = await services.auth.oauth_login(provider, data.code, data.state)
    return _session_body(session)
