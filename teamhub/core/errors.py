"""
Error taxonomy.

Every failure a core operation can surface is one of these. Each class
carries the HTTP status it maps to, so the API layer converts them without
a lookup table.
"""

from __future__ import annotations


class TeamHubError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class Unauthenticated(TeamHubError):
    """Missing, invalid or expired credential."""
    status_code = 401

    def __init__(self, message: str = "Please authenticate"):
        super().__init__(message)


class Forbidden(TeamHubError):
    """Authenticated, but the capability check or an owner-immunity rule failed."""
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFound(TeamHubError):
    """Referenced user, team, invitation or membership does not exist."""
    status_code = 404


class Conflict(TeamHubError):
    """Duplicate email, invitation, membership or subscription tier."""
    status_code = 409


class ValidationFailed(TeamHubError):
    """Malformed input."""
    status_code = 400


class ExternalServiceError(TeamHubError):
    """Billing gateway or notification sink failure."""
    status_code = 502


class BillingError(ExternalServiceError):
    """
    The payment processor rejected a request.

    Surfaced to the caller with the processor's own message, as a client
    error since it is almost always about the card or plan the user picked.
    """
    status_code = 400


class NotificationError(ExternalServiceError):
    """Outbound email failed. Logged only, never returned to a caller."""
    pass


class PropagationError(TeamHubError):
    """
    A fan-out over team members finished with failures.

    The primary write and every successful member write stay committed;
    `failed_user_ids` lists the members whose copy could not be updated.
    """
    status_code = 500

    def __init__(self, message: str, failed_user_ids: list[str]):
        super().__init__(message)
        self.failed_user_ids = failed_user_ids
