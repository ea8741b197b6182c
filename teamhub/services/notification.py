"""
Notification Service.

Renders the three account emails (password reset, email verification, team
invitation) and hands them to an email sink. Sends are best-effort: every
method returns None on success or a warning string on failure, and never
raises.
"""

from __future__ import annotations

import logging
from typing import Protocol

from teamhub.config import Settings, get_settings
from teamhub.core.errors import NotificationError
from teamhub.core.models import Team

logger = logging.getLogger(__name__)


class EmailSink(Protocol):
    """Anything that can deliver a plain-text email."""

    async def send(self, to: str, subject: str, body: str) -> bool: ...


# =============================================================================
# Templates
# =============================================================================

TEMPLATES = {
    "reset_password": {
        "subject": "Reset password",
        "text": (
            "Dear user,\n"
            "To reset your password, click on this link: {url}\n"
            "If you did not request any password resets, then ignore this email."
        ),
    },
    "verify_email": {
        "subject": "Verify email",
        "text": (
            "Dear user,\n"
            "To verify your email, click on this link: {url}\n"
            "If you did not sign up, then ignore this email."
        ),
    },
    "team_invitation": {
        "subject": "Team invitation",
        "text": (
            "Dear user,\n"
            "To join the team {team_name}, click on this link: {url}\n"
            "If you do not wish to join, then ignore this email."
        ),
    },
}


class NotificationService:
    """Builds account emails and delivers them through a sink."""

    def __init__(self, sink: EmailSink, settings: Settings | None = None):
        self.sink = sink
        self.settings = settings or get_settings()

    @property
    def client_url(self) -> str:
        return self.settings.client_url.rstrip("/")

    async def _deliver(self, to: str, template: str, **data) -> str | None:
        tpl = TEMPLATES[template]
        body = tpl["text"].format(**data)
        try:
            sent = await self.sink.send(to, tpl["subject"], body)
        except NotificationError as e:
            sent = False
            logger.warning(f"Email sink raised for '{template}' to {to}: {e}")

        if not sent:
            warning = f"Could not send {template} email to {to}"
            logger.warning(warning)
            return warning
        return None

    async def send_reset_password(self, email: str, token: str) -> str | None:
        url = f"{self.client_url}/auth/reset-password?token={token}"
        return await self._deliver(email, "reset_password", url=url)

    async def send_verify_email(self, email: str, token: str) -> str | None:
        url = f"{self.client_url}/verify-email?token={token}"
        return await self._deliver(email, "verify_email", url=url)

    async def send_team_invitation(self, email: str, team: Team, invitation_id: str) -> str | None:
        url = f"{self.client_url}/app/team-invitation/{team.id}?invitationId={invitation_id}"
        return await self._deliver(email, "team_invitation", url=url, team_name=team.name)
