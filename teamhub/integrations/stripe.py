# =============================================================================
# Stripe Billing Integration
# =============================================================================
#
# Setup:
#   Set env vars:
#     - STRIPE_SECRET_KEY=sk_...
#     - STRIPE_WEBHOOK_SECRET=whsec_...   (optional, enables signature checks)
#
# Talks to the Stripe REST API directly with httpx. Objects come back as the
# plain dicts Stripe returns; only the fields the billing service reads are
# relied on.
#
# =============================================================================

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from teamhub.config import Settings, get_settings
from teamhub.core.errors import BillingError, ExternalServiceError

logger = logging.getLogger(__name__)

# Maximum age of a signed webhook payload
WEBHOOK_TOLERANCE_SECONDS = 300


# =============================================================================
# Gateway interface
# =============================================================================


class BillingGateway(ABC):
    """Operations the billing service needs from a payment processor."""

    # Catalog
    @abstractmethod
    async def list_products(self) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def list_prices(self) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def create_product(self, params: dict[str, Any]) -> dict[str, Any]: ...

    @abstractmethod
    async def create_price(self, params: dict[str, Any]) -> dict[str, Any]: ...

    # Customers
    @abstractmethod
    async def create_customer(self, name: str, email: str) -> dict[str, Any]: ...

    @abstractmethod
    async def update_customer(self, customer_id: str, params: dict[str, Any]) -> dict[str, Any]: ...

    @abstractmethod
    async def delete_customer(self, customer_id: str) -> None: ...

    # Payment methods
    @abstractmethod
    async def retrieve_payment_method(self, payment_method_id: str) -> dict[str, Any]: ...

    @abstractmethod
    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None: ...

    @abstractmethod
    async def detach_payment_method(self, payment_method_id: str) -> None: ...

    # Subscriptions
    @abstractmethod
    async def create_subscription(self, customer_id: str, price_id: str) -> dict[str, Any]: ...

    @abstractmethod
    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]: ...

    @abstractmethod
    async def update_subscription(
        self, subscription_id: str, item_id: str, price_id: str
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def delete_subscription(self, subscription_id: str) -> None: ...

    async def aclose(self) -> None:
        """Release any held connections."""
        return None


# =============================================================================
# Form encoding
# =============================================================================


def encode_form(params: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """
    Flatten nested params into Stripe's bracketed form fields.

        {"items": [{"price": "p"}]}  ->  [("items[0][price]", "p")]

    None becomes an empty string, which Stripe reads as "unset".
    """
    fields: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, dict):
            fields.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, dict):
                    fields.extend(encode_form(item, item_name))
                else:
                    fields.append((item_name, _scalar(item)))
        else:
            fields.append((name, _scalar(value)))
    return fields


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Webhook signatures
# =============================================================================


def verify_webhook_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    now: float | None = None,
) -> None:
    """
    Check a `Stripe-Signature` header against the raw request body.

    Raises BillingError if the header is missing, stale or matches no v1
    signature.
    """
    if not header:
        raise BillingError("Missing Stripe-Signature header")

    timestamp: int | None = None
    signatures: list[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise BillingError("Malformed Stripe-Signature header")
        elif key == "v1":
            signatures.append(value)

    if timestamp is None or not signatures:
        raise BillingError("Malformed Stripe-Signature header")

    now = time.time() if now is None else now
    if abs(now - timestamp) > tolerance:
        raise BillingError("Webhook timestamp outside tolerance")

    signed = f"{timestamp}.".encode("utf-8") + payload
    expected = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, s) for s in signatures):
        raise BillingError("Webhook signature mismatch")


# =============================================================================
# Stripe REST gateway
# =============================================================================


class StripeGateway(BillingGateway):
    """BillingGateway over the Stripe REST API."""

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.stripe_secret_key)

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.stripe_secret_key}",
            "Content-Type": "application/x-www-form-urlencoded",
        }

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.stripe_api_base,
                headers=self._get_headers(),
                timeout=30.0,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        fields = encode_form(params or {})
        try:
            if method == "GET":
                response = await self.client.get(path, params=fields)
            elif method == "DELETE":
                response = await self.client.delete(path)
            else:
                response = await self.client.post(path, data=dict(fields))
        except httpx.TransportError as e:
            logger.error(f"Stripe {method} {path} failed: {e}")
            raise ExternalServiceError("Payment processor unavailable") from e

        if response.status_code >= 400:
            try:
                message = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                message = f"Payment processor error ({response.status_code})"
            logger.error(f"Stripe {method} {path} returned {response.status_code}: {message}")
            raise BillingError(message)

        return response.json()

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def list_products(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/v1/products", {"limit": 100})
        return data.get("data", [])

    async def list_prices(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/v1/prices", {"limit": 100})
        return data.get("data", [])

    async def create_product(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/v1/products", params)

    async def create_price(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/v1/prices", params)

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    async def create_customer(self, name: str, email: str) -> dict[str, Any]:
        return await self._request("POST", "/v1/customers", {"name": name, "email": email})

    async def update_customer(self, customer_id: str, params: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/v1/customers/{customer_id}", params)

    async def delete_customer(self, customer_id: str) -> None:
        await self._request("DELETE", f"/v1/customers/{customer_id}")

    # -------------------------------------------------------------------------
    # Payment methods
    # -------------------------------------------------------------------------

    async def retrieve_payment_method(self, payment_method_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/v1/payment_methods/{payment_method_id}")

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        await self._request(
            "POST",
            f"/v1/payment_methods/{payment_method_id}/attach",
            {"customer": customer_id},
        )

    async def detach_payment_method(self, payment_method_id: str) -> None:
        await self._request("POST", f"/v1/payment_methods/{payment_method_id}/detach")

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def create_subscription(self, customer_id: str, price_id: str) -> dict[str, Any]:
        return await self._request("POST", "/v1/subscriptions", {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "expand": ["latest_invoice.payment_intent"],
        })

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/v1/subscriptions/{subscription_id}")

    async def update_subscription(
        self, subscription_id: str, item_id: str, price_id: str
    ) -> dict[str, Any]:
        return await self._request("POST", f"/v1/subscriptions/{subscription_id}", {
            "cancel_at_period_end": False,
            "items": [{"id": item_id, "price": price_id}],
            "expand": ["latest_invoice.payment_intent"],
        })

    async def delete_subscription(self, subscription_id: str) -> None:
        await self._request("DELETE", f"/v1/subscriptions/{subscription_id}")
