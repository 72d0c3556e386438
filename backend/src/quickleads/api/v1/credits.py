"""Credit balance, packages and Stripe checkout."""

from fastapi import APIRouter, Depends, Request

from quickleads.api.rate_limit import CHECKOUT_LIMIT, limiter
from quickleads.api.schemas import CheckoutRequest, CheckoutResponse, PurchaseResponse
from quickleads.auth.credits import credit_service
from quickleads.auth.middleware import require_auth
from quickleads.payments import stripe_service
from quickleads.settings import settings
from quickleads.storage.models import UserAccount

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/packages")
async def list_packages():
    """Public price list."""
    return {"packages": credit_service.get_packages()}


@router.get("/balance")
async def get_balance(user: UserAccount = Depends(require_auth)):
    return {"credits": credit_service.get_balance(user.id)}


@router.get("/purchases", response_model=list[PurchaseResponse])
async def get_purchases(user: UserAccount = Depends(require_auth)):
    return credit_service.get_purchase_history(user.id)


@router.post("/checkout", response_model=CheckoutResponse)
@limiter.limit(CHECKOUT_LIMIT)
async def create_checkout(
    request: Request,
    body: CheckoutRequest,
    user: UserAccount = Depends(require_auth),
):
    """Start a Stripe Checkout session for a credit package."""
    base_url = settings.base_url
    return stripe_service.create_checkout_session(
        user_id=user.id,
        user_email=user.email,
        package_id=body.package_id,
        success_url=body.success_url or f"{base_url}/dashboard?payment=success&session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=body.cancel_url or f"{base_url}/pricing?payment=cancelled",
    )
