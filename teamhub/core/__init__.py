"""Core types: models, errors, results."""

from teamhub.core.errors import (
    TeamHubError,
    Unauthenticated,
    Forbidden,
    NotFound,
    Conflict,
    ValidationFailed,
    ExternalServiceError,
    BillingError,
    NotificationError,
    PropagationError,
)
from teamhub.core.models import (
    FREE_TIER,
    Invitation,
    PaymentMethod,
    Subscription,
    Team,
    TeamMember,
    TeamMembership,
    TeamRole,
    User,
    UserRole,
)
from teamhub.core.results import OperationResult

__all__ = [
    # Errors
    "TeamHubError",
    "Unauthenticated",
    "Forbidden",
    "NotFound",
    "Conflict",
    "ValidationFailed",
    "ExternalServiceError",
    "BillingError",
    "NotificationError",
    "PropagationError",
    # Models
    "FREE_TIER",
    "Invitation",
    "PaymentMethod",
    "Subscription",
    "Team",
    "TeamMember",
    "TeamMembership",
    "TeamRole",
    "User",
    "UserRole",
    "OperationResult",
]
