"""
Service wiring.

`AppServices` holds every long-lived collaborator. The app builds one at
startup (or takes one from the caller, as tests do) and stores it on
`app.state.services`; route handlers reach it through `get_services`.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from teamhub.auth.jwt import TokenService
from teamhub.auth.service import AuthService
from teamhub.config import Settings, get_settings
from teamhub.integrations.email import get_email_service
from teamhub.integrations.oauth import OAuthManager
from teamhub.integrations.stripe import BillingGateway, StripeGateway
from teamhub.services.billing import BillingService, ProductCatalog
from teamhub.services.membership import MembershipService
from teamhub.services.notification import EmailSink, NotificationService
from teamhub.services.users import UserService
from teamhub.storage import StorageProvider, TeamStore, UserStore, create_local_storage


@dataclass
class AppServices:
    settings: Settings
    storage: StorageProvider
    users: UserStore
    teams: TeamStore
    tokens: TokenService
    gateway: BillingGateway
    catalog: ProductCatalog
    notifications: NotificationService
    membership: MembershipService
    user_service: UserService
    auth: AuthService
    billing: BillingService


def build_services(
    settings: Settings | None = None,
    storage: StorageProvider | None = None,
    gateway: BillingGateway | None = None,
    email: EmailSink | None = None,
) -> AppServices:
    """Wire the service graph. Anything not given gets its production default."""
    settings = settings or get_settings()
    storage = storage or create_local_storage()
    gateway = gateway or StripeGateway(settings)

    users = UserStore(storage.metadata)
    teams = TeamStore(storage.metadata)
    tokens = TokenService(settings, storage.cache)
    notifications = NotificationService(email or get_email_service(), settings)
    catalog = ProductCatalog(gateway, ttl_seconds=settings.billing_catalog_ttl_seconds)

    membership = MembershipService(users, teams, notifications)
    user_service = UserService(users, membership, gateway, notifications, tokens)
    auth = AuthService(
        users,
        user_service,
        tokens,
        notifications,
        OAuthManager(storage.cache, settings),
    )
    billing = BillingService(users, gateway, catalog, settings)

    return AppServices(
        settings=settings,
        storage=storage,
        users=users,
        teams=teams,
        tokens=tokens,
        gateway=gateway,
        catalog=catalog,
        notifications=notifications,
        membership=membership,
        user_service=user_service,
        auth=auth,
        billing=billing,
    )


def get_services(request: Request) -> AppServices:
    return request.app.state.services
