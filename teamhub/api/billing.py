# =============================================================================
# Billing API Routes
# =============================================================================
#
#   GET    /billing/products               - Plans with prices (public)
#   POST   /billing/payment-method         - Replace default payment method
#   POST   /billing/subscription           - Change subscription tier
#   POST   /billing/subscription/complete  - Record a confirmed subscription
#   DELETE /billing/subscription           - Cancel own subscription
#   POST   /billing/webhook                - Stripe events (signature checked)
#
# =============================================================================

from fastapi import APIRouter, Depends, Header, Request, Response, status
from pydantic import BaseModel

from teamhub.api.dependencies import AppServices, get_services
from teamhub.auth.context import AuthContext
from teamhub.auth.policies import require_auth

router = APIRouter(prefix="/billing", tags=["billing"])


class Address(BaseModel):
    line1: str
    country: str


class PaymentMethodRequest(BaseModel):
    payment_method_id: str
    address: Address | None = None


class SubscriptionRequest(BaseModel):
    subscription_type: str


class CompleteSubscriptionRequest(BaseModel):
    subscription_id: str
    product_id: str


@router.get("/products")
async def list_products(services: AppServices = Depends(get_services)):
    return {"products": await services.billing.list_plans()}


@router.post("/payment-method")
async def update_payment_method(
    data: PaymentMethodRequest,
    ctx: AuthContext = Depends(require_auth()),
    services: AppServices = Depends(get_services),
):
    address = data.address.model_dump() if data.address else None
    user = await services.billing.update_payment_method(ctx.user, data.payment_method_id, address)
    return {"user": user.to_public()}


@router.post("/subscription")
async def change_subscription(
    data: SubscriptionRequest,
    ctx: AuthContext = Depends(require_auth()),
    services: AppServices = Depends(get_services),
):
    subscription = await services.billing.change_subscription(ctx.user, data.subscription_type)
    if subscription is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return {"subscription": subscription}


@router.post("/subscription/complete")
async def complete_subscription(
    data: CompleteSubscriptionRequest,
    ctx: AuthContext = Depends(require_auth()),
    services: AppServices = Depends(get_services),
):
    user = await services.billing.complete_subscription(
        ctx.user, data.subscription_id, data.product_id
    )
    return {"user": user.to_public()}


@router.delete("/subscription", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_subscription(
    ctx: AuthContext = Depends(require_auth()),
    services: AppServices = Depends(get_services),
):
    await services.billing.cancel_subscription(ctx.user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/webhook")
async def webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    services: AppServices = Depends(get_services),
):
    payload = await request.body()
    return await services.billing.handle_webhook(payload, stripe_signature)
