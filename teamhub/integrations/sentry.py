# =============================================================================
# Error Reporting (Sentry)
# =============================================================================
#
# Env:
#   SENTRY_DSN     project DSN; reporting is off when empty
#
# The API lifespan calls init_sentry(). Request identity is attached by
# teamhub/auth/policies.py. Everything here degrades to logging when the
# client is inactive.
#
# =============================================================================

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from teamhub.config import Settings, get_settings
from teamhub.core.errors import TeamHubError

logger = logging.getLogger(__name__)

REDACTED = "[Filtered]"
_PRIVATE_HEADERS = frozenset({"authorization", "cookie", "stripe-signature"})


def init_sentry(settings: Settings | None = None) -> bool:
    """Start the Sentry client. False when no DSN is configured."""
    settings = settings or get_settings()
    if not settings.sentry_dsn:
        logger.info("Error reporting off (no SENTRY_DSN)")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        send_default_pii=False,
        before_send=_filter_events,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
    )
    logger.info(f"Error reporting on ({settings.environment})")
    return True


def is_active() -> bool:
    return sentry_sdk.get_client().is_active()


def _filter_events(event: dict, hint: dict) -> dict | None:
    # 4xx domain errors are answered to the caller, not reported
    exc_info = hint.get("exc_info")
    if exc_info is not None:
        error = exc_info[1]
        if isinstance(error, TeamHubError) and error.status_code < 500:
            return None

    headers = (event.get("request") or {}).get("headers") or {}
    for name in headers:
        if name.lower() in _PRIVATE_HEADERS:
            headers[name] = REDACTED
    return event


def capture_exception(error: Exception, **context) -> str | None:
    """Report an error with extra context. Returns the Sentry event id."""
    if not is_active():
        logger.error(f"Unreported error: {error!r}", exc_info=error)
        return None

    with sentry_sdk.new_scope() as scope:
        scope.set_context("teamhub", context)
        return sentry_sdk.capture_exception(error)


def set_user(user_id: str, email: str | None = None) -> None:
    if is_active():
        sentry_sdk.set_user({"id": user_id, "email": email})


def set_tag(key: str, value: str) -> None:
    if is_active():
        sentry_sdk.set_tag(key, value)
