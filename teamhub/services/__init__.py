"""Services - the operations behind the HTTP routes."""

from teamhub.services.notification import NotificationService
from teamhub.services.membership import MembershipChange, MembershipService
from teamhub.services.users import UserService
from teamhub.services.billing import BillingService, ProductCatalog, load_plans

__all__ = [
    "NotificationService",
    "MembershipChange",
    "MembershipService",
    "UserService",
    "BillingService",
    "ProductCatalog",
    "load_plans",
]
