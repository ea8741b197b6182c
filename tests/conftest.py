"""Shared fixtures: in-memory storage, a scripted billing gateway and a recording email sink."""

import pytest

from teamhub.api.dependencies import build_services
from teamhub.config import Settings
from teamhub.core.models import UserRole
from teamhub.integrations.stripe import BillingGateway
from teamhub.storage import create_local_storage


# =============================================================================
# Fakes
# =============================================================================


def _catalog_products():
    return [
        {"id": "prod_advanced", "name": "Advanced Subscription", "description": "Advanced",
         "active": True, "metadata": {"type": "advanced"}},
        {"id": "prod_basic", "name": "Basic Subscription", "description": "Basic",
         "active": True, "metadata": {"type": "basic"}},
    ]


def _catalog_prices():
    return [
        {"id": "price_advanced", "product": "prod_advanced", "unit_amount": 5000,
         "currency": "usd", "recurring": {"interval": "month"}, "metadata": {"type": "advanced"}},
        {"id": "price_basic", "product": "prod_basic", "unit_amount": 1000,
         "currency": "usd", "recurring": {"interval": "month"}, "metadata": {"type": "basic"}},
    ]


class FakeBillingGateway(BillingGateway):
    """In-memory payment processor. Every call is recorded in `calls`."""

    def __init__(self, products=None, prices=None):
        self.products = _catalog_products() if products is None else products
        self.prices = _catalog_prices() if prices is None else prices
        self.calls = []
        self.customers = {}
        self.subscriptions = {}
        self.card_last4 = "4242"
        self.payment_intent_status = "succeeded"
        self.list_errors = []
        self._counter = 0

    def _next_id(self, prefix):
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def called(self, name):
        return [args for call, args in self.calls if call == name]

    async def list_products(self):
        self.calls.append(("list_products", ()))
        if self.list_errors:
            raise self.list_errors.pop(0)
        return list(self.products)

    async def list_prices(self):
        self.calls.append(("list_prices", ()))
        return list(self.prices)

    async def create_product(self, params):
        self.calls.append(("create_product", (params,)))
        product = {"id": self._next_id("prod"), **params}
        self.products.append(product)
        return product

    async def create_price(self, params):
        self.calls.append(("create_price", (params,)))
        price = {"id": self._next_id("price"), **params}
        self.prices.append(price)
        return price

    async def create_customer(self, name, email):
        self.calls.append(("create_customer", (name, email)))
        customer = {"id": self._next_id("cus"), "name": name, "email": email}
        self.customers[customer["id"]] = customer
        return customer

    async def update_customer(self, customer_id, params):
        self.calls.append(("update_customer", (customer_id, params)))
        return {"id": customer_id, **params}

    async def delete_customer(self, customer_id):
        self.calls.append(("delete_customer", (customer_id,)))
        self.customers.pop(customer_id, None)

    async def retrieve_payment_method(self, payment_method_id):
        self.calls.append(("retrieve_payment_method", (payment_method_id,)))
        card = {"last4": self.card_last4} if self.card_last4 else None
        return {"id": payment_method_id, "card": card}

    async def attach_payment_method(self, payment_method_id, customer_id):
        self.calls.append(("attach_payment_method", (payment_method_id, customer_id)))

    async def detach_payment_method(self, payment_method_id):
        self.calls.append(("detach_payment_method", (payment_method_id,)))

    async def create_subscription(self, customer_id, price_id):
        self.calls.append(("create_subscription", (customer_id, price_id)))
        intent = {"status": self.payment_intent_status}
        if self.payment_intent_status == "requires_payment_method":
            intent["last_payment_error"] = {"message": "Your card was declined."}
        subscription = {
            "id": self._next_id("sub"),
            "customer": customer_id,
            "items": {"data": [{"id": self._next_id("si"), "price": {"id": price_id}}]},
            "latest_invoice": {"payment_intent": intent},
        }
        self.subscriptions[subscription["id"]] = subscription
        return subscription

    async def retrieve_subscription(self, subscription_id):
        self.calls.append(("retrieve_subscription", (subscription_id,)))
        return self.subscriptions.get(subscription_id) or {
            "id": subscription_id,
            "items": {"data": [{"id": "si_existing", "price": {"id": "price_basic"}}]},
        }

    async def update_subscription(self, subscription_id, item_id, price_id):
        self.calls.append(("update_subscription", (subscription_id, item_id, price_id)))
        return {
            "id": subscription_id,
            "items": {"data": [{"id": item_id, "price": {"id": price_id}}]},
        }

    async def delete_subscription(self, subscription_id):
        self.calls.append(("delete_subscription", (subscription_id,)))
        self.subscriptions.pop(subscription_id, None)


class RecordingSink:
    """Email sink that keeps what it was asked to send."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, to, subject, body):
        if self.fail:
            return False
        self.sent.append({"to": to, "subject": subject, "body": body})
        return True

    def last_token(self):
        """Token query parameter from the most recent email link."""
        body = self.sent[-1]["body"]
        return body.split("token=", 1)[1].split()[0]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        jwt_secret_key="test-secret-key-with-enough-length-for-hs256",
        client_url="http://app.test",
        stripe_webhook_secret="",
        sentry_dsn="",
        aws_access_key_id="",
        aws_secret_access_key="",
    )


@pytest.fixture
def storage():
    return create_local_storage()


@pytest.fixture
def gateway():
    return FakeBillingGateway()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def services(settings, storage, gateway, sink):
    return build_services(settings=settings, storage=storage, gateway=gateway, email=sink)


@pytest.fixture
def make_user(services):
    """Factory for stored users: `await make_user("ana")`."""

    async def _make(name, email=None, role=UserRole.USER, password="password1"):
        return await services.user_service.create_user(
            name=name,
            email=email or f"{name.lower()}@example.com",
            password=password,
            role=role,
        )

    return _make
