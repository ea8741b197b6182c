# =============================================================================
# Outbound Email (AWS SES)
# =============================================================================
#
# Env:
#   AWS_SES_FROM_EMAIL     verified sender address
#   AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY / AWS_REGION
#
# Plain-text delivery only. Rendering lives in teamhub/services/notification.py,
# which treats both a False return and a NotificationError as "not sent".
#
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from teamhub.config import Settings, get_settings
from teamhub.core.errors import NotificationError

logger = logging.getLogger(__name__)


def _text_message(subject: str, body: str) -> dict[str, Any]:
    return {
        "Subject": {"Data": subject, "Charset": "UTF-8"},
        "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
    }


class EmailService:
    """EmailSink backed by SES. Without AWS credentials it only logs."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._client = None

    @property
    def is_configured(self) -> bool:
        return self.settings.use_aws and bool(self.settings.aws_ses_from_email)

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "ses",
                region_name=self.settings.aws_region,
                aws_access_key_id=self.settings.aws_access_key_id,
                aws_secret_access_key=self.settings.aws_secret_access_key,
            )
        return self._client

    async def send(self, to: str, subject: str, body: str) -> bool:
        """
        Deliver one message.

        Returns False when SES is not configured. Raises NotificationError
        when SES rejects the message or cannot be reached.
        """
        if not self.is_configured:
            logger.warning(f"SES not configured, dropping '{subject}' to {to}")
            logger.debug(body)
            return False

        try:
            # boto3 is blocking
            response = await asyncio.to_thread(
                self.client.send_email,
                Source=self.settings.aws_ses_from_email,
                Destination={"ToAddresses": [to]},
                Message=_text_message(subject, body),
            )
        except (ClientError, BotoCoreError) as e:
            raise NotificationError(f"SES send to {to} failed: {e}") from e

        logger.info(f"Sent '{subject}' to {to} ({response['MessageId']})")
        return True


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
