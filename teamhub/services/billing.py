"""
Billing Service.

Subscription plans, payment methods and subscriptions, on top of a
BillingGateway. The processor's product catalog is held by a
ProductCatalog that the service is given; it is loaded at startup and
reloaded once it is older than its TTL.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from teamhub.config import Settings, get_settings
from teamhub.core.errors import (
    BillingError,
    Conflict,
    ExternalServiceError,
    NotFound,
    ValidationFailed,
)
from teamhub.core.models import FREE_TIER, PaymentMethod, Subscription, User
from teamhub.integrations.stripe import BillingGateway, verify_webhook_signature
from teamhub.storage.repositories import UserStore

logger = logging.getLogger(__name__)

DEFAULT_PLANS_PATH = Path(__file__).resolve().parent.parent / "resources" / "plans.yaml"

CURRENCY_SYMBOLS = {
    "usd": "$",
    "eur": "€",
    "gbp": "£",
    "jpy": "¥",
    "inr": "₹",
    "cad": "CA$",
    "aud": "A$",
}


# =============================================================================
# Plan definitions
# =============================================================================


class PlanProduct(BaseModel):
    name: str
    description: str = ""
    active: bool = True


class PlanPrice(BaseModel):
    unit_amount: int
    currency: str = "usd"
    interval: str = "month"


class PlanDefinition(BaseModel):
    """One subscription tier as configured in plans.yaml."""

    type: str
    product: PlanProduct
    price: PlanPrice


def load_plans(path: Path | str | None = None) -> list[PlanDefinition]:
    """Load plan definitions from a YAML file."""
    path = Path(path) if path else DEFAULT_PLANS_PATH
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return [PlanDefinition.model_validate(item) for item in data.get("plans", [])]


def currency_symbol(currency: str) -> str:
    return CURRENCY_SYMBOLS.get(currency.lower(), currency)


def _plan_type(obj: dict[str, Any]) -> str | None:
    return (obj.get("metadata") or {}).get("type")


def _is_transient(error: BaseException) -> bool:
    # BillingError is a definite answer from the processor, not worth retrying
    return isinstance(error, ExternalServiceError) and not isinstance(error, BillingError)


# =============================================================================
# Product catalog
# =============================================================================


class ProductCatalog:
    """Cached copy of the processor's products and prices."""

    def __init__(self, gateway: BillingGateway, ttl_seconds: int = 3600):
        self.gateway = gateway
        self.ttl_seconds = ttl_seconds
        self._products: list[dict[str, Any]] = []
        self._prices: list[dict[str, Any]] = []
        self._loaded_at: float | None = None

    @property
    def is_stale(self) -> bool:
        if self._loaded_at is None:
            return True
        return time.monotonic() - self._loaded_at > self.ttl_seconds

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    async def refresh(self) -> None:
        """Reload products and prices from the processor."""
        products = await self.gateway.list_products()
        prices = await self.gateway.list_prices()
        self._products = products
        self._prices = prices
        self._loaded_at = time.monotonic()
        logger.info(f"Loaded {len(products)} products and {len(prices)} prices")

    async def ensure_fresh(self) -> None:
        if self.is_stale:
            await self.refresh()

    async def plans(self) -> list[dict[str, Any]]:
        """Products joined with their prices, cheapest first."""
        await self.ensure_fresh()
        products_by_id = {p["id"]: p for p in self._products}

        plans = []
        for price in self._prices:
            product = products_by_id.get(price.get("product"))
            if product is None:
                continue
            plans.append({
                "product": {
                    "id": product["id"],
                    "name": product.get("name"),
                    "description": product.get("description"),
                    "active": product.get("active", True),
                    "metadata": product.get("metadata") or {},
                },
                "price": {
                    "id": price["id"],
                    "unit_amount": price.get("unit_amount") or 0,
                    "currency": price.get("currency", ""),
                    "recurring": {"interval": (price.get("recurring") or {}).get("interval")},
                    "metadata": price.get("metadata") or {},
                    "currency_symbol": currency_symbol(price.get("currency", "")),
                },
            })

        return sorted(plans, key=lambda plan: plan["price"]["unit_amount"])

    async def price_for(self, subscription_type: str) -> dict[str, Any] | None:
        await self.ensure_fresh()
        return next((p for p in self._prices if _plan_type(p) == subscription_type), None)

    async def product(self, product_id: str) -> dict[str, Any] | None:
        await self.ensure_fresh()
        return next((p for p in self._products if p["id"] == product_id), None)

    async def sync_plans(self, plans: list[PlanDefinition]) -> None:
        """
        Create any configured plan the processor does not have yet.

        Products and prices are matched on metadata.type. Existing ones are
        left alone; prices cannot be edited through the API.
        """
        products = {_plan_type(p): p for p in await self.gateway.list_products()}
        prices = {_plan_type(p) for p in await self.gateway.list_prices()}

        for plan in plans:
            metadata = {"type": plan.type}
            product = products.get(plan.type)
            if product is None:
                product = await self.gateway.create_product({
                    **plan.product.model_dump(),
                    "metadata": metadata,
                })
                logger.info(f"Created product {product['id']} for plan {plan.type}")
            if plan.type not in prices:
                price = await self.gateway.create_price({
                    "product": product["id"],
                    "unit_amount": plan.price.unit_amount,
                    "currency": plan.price.currency,
                    "recurring": {"interval": plan.price.interval},
                    "metadata": metadata,
                })
                logger.info(f"Created price {price['id']} for plan {plan.type}")

        await self.refresh()


# =============================================================================
# Billing service
# =============================================================================


class BillingService:
    """Payment methods and subscriptions for users."""

    def __init__(
        self,
        users: UserStore,
        gateway: BillingGateway,
        catalog: ProductCatalog,
        settings: Settings | None = None,
    ):
        self.users = users
        self.gateway = gateway
        self.catalog = catalog
        self.settings = settings or get_settings()

    async def list_plans(self) -> list[dict[str, Any]]:
        return await self.catalog.plans()

    async def update_payment_method(
        self,
        user: User,
        payment_method_id: str,
        address: dict[str, Any] | None = None,
    ) -> User:
        """Replace the user's default payment method."""
        payment_method = await self.gateway.retrieve_payment_method(payment_method_id)
        last4 = (payment_method.get("card") or {}).get("last4")
        if not last4:
            raise BillingError("Payment method has no card details")

        if user.payment_method:
            await self.gateway.detach_payment_method(user.payment_method.id)
            await self.gateway.update_customer(
                user.billing_customer_id,
                {"invoice_settings": {"default_payment_method": None}},
            )
            user.payment_method = None
            user = await self.users.save(user)

        await self.gateway.attach_payment_method(payment_method_id, user.billing_customer_id)
        params: dict[str, Any] = {"invoice_settings": {"default_payment_method": payment_method_id}}
        if address:
            params["address"] = address
        await self.gateway.update_customer(user.billing_customer_id, params)

        user.payment_method = PaymentMethod(id=payment_method_id, last4=last4)
        return await self.users.save(user)

    async def change_subscription(self, user: User, subscription_type: str) -> dict[str, Any] | None:
        """
        Move the user to another tier.

        Returns the processor subscription, or None when moving to free.
        Leaving free creates a subscription that is confirmed later through
        complete_subscription or the invoice.paid webhook.
        """
        if user.subscription.subscription_type == subscription_type:
            raise Conflict("Subscription plan is already active")

        if subscription_type == FREE_TIER:
            if user.subscription.id:
                await self.gateway.delete_subscription(user.subscription.id)
            user.subscription = Subscription()
            await self.users.save(user)
            return None

        if user.payment_method is None:
            raise NotFound("Billing details not found")

        price = await self.catalog.price_for(subscription_type)
        if price is None:
            raise NotFound("Subscription type not found")

        if user.subscription.is_free:
            subscription = await self.gateway.create_subscription(user.billing_customer_id, price["id"])
            intent = (subscription.get("latest_invoice") or {}).get("payment_intent") or {}
            if intent.get("status") == "requires_payment_method":
                await self.gateway.delete_subscription(subscription["id"])
                message = (intent.get("last_payment_error") or {}).get("message")
                raise BillingError(message or "Payment could not be completed")
            return subscription

        current = await self.gateway.retrieve_subscription(user.subscription.id)
        item_id = current["items"]["data"][0]["id"]
        subscription = await self.gateway.update_subscription(current["id"], item_id, price["id"])
        user.subscription = Subscription(id=subscription["id"], subscription_type=subscription_type)
        await self.users.save(user)
        return subscription

    async def complete_subscription(self, user: User, subscription_id: str, product_id: str) -> User:
        """Record a confirmed subscription on the user."""
        product = await self.catalog.product(product_id)
        subscription_type = _plan_type(product) if product else None
        if subscription_type is None:
            raise NotFound("Product not found")
        user.subscription = Subscription(id=subscription_id, subscription_type=subscription_type)
        return await self.users.save(user)

    async def cancel_subscription(self, user: User) -> User:
        """Cancel the user's own subscription and drop them to free."""
        if not user.subscription.id:
            raise NotFound("Subscription not found")
        await self.gateway.delete_subscription(user.subscription.id)
        user.subscription = Subscription()
        return await self.users.save(user)

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    async def handle_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Apply a processor event to the matching user."""
        if self.settings.stripe_webhook_secret:
            verify_webhook_signature(payload, signature, self.settings.stripe_webhook_secret)

        try:
            event = json.loads(payload)
            event_type = event["type"]
            obj = event["data"]["object"]
        except (ValueError, KeyError, TypeError):
            raise ValidationFailed("Malformed webhook payload")

        if event_type == "invoice.paid":
            await self._invoice_paid(obj)
        elif event_type == "invoice.payment_failed":
            await self._invoice_payment_failed(obj)
        else:
            logger.info(f"Unhandled event type {event_type}")

        return {"received": True}

    async def _invoice_paid(self, invoice: dict[str, Any]) -> None:
        user = await self.users.get_by_billing_customer(invoice.get("customer", ""))
        if user is None:
            logger.warning(f"invoice.paid for unknown customer {invoice.get('customer')}")
            return
        try:
            subscription_type = invoice["lines"]["data"][0]["price"]["metadata"]["type"]
        except (KeyError, IndexError, TypeError):
            raise ValidationFailed("Invoice has no plan type")
        user.subscription = Subscription(
            id=invoice.get("subscription"),
            subscription_type=subscription_type,
        )
        await self.users.save(user)
        logger.info(f"User {user.id} subscription confirmed: {subscription_type}")

    async def _invoice_payment_failed(self, invoice: dict[str, Any]) -> None:
        user = await self.users.get_by_billing_customer(invoice.get("customer", ""))
        if user is None:
            logger.warning(f"invoice.payment_failed for unknown customer {invoice.get('customer')}")
            return
        if invoice.get("subscription"):
            await self.gateway.delete_subscription(invoice["subscription"])
        user.subscription = Subscription()
        await self.users.save(user)
        logger.info(f"User {user.id} dropped to {FREE_TIER} after failed payment")
