"""Stripe payment integration for QuickLeads."""

from decimal import Decimal
from typing import Any

import stripe

from quickleads.catalog import CreditCatalog, load_catalog
from quickleads.errors import UpstreamError, ValidationError
from quickleads.logging_config import get_logger
from quickleads.payments.purchases import PurchaseService, purchase_service
from quickleads.settings import settings
from quickleads.storage.models import CreditPurchase

logger = get_logger(__name__)

# Initialize Stripe
stripe.api_key = settings.stripe_secret_key


def create_checkout_session(
    user_id: int,
    user_email: str,
    package_id: str,
    success_url: str,
    cancel_url: str,
    catalog: CreditCatalog | None = None,
    purchases: PurchaseService | None = None,
) -> dict[str, str]:
    """Create a Stripe Checkout session for a credit package.

    A pending purchase keyed by the session id is recorded alongside.

    Returns:
        Dict with session_id and url

    Raises:
        ValidationError: Unknown package
        UpstreamError: Stripe not configured or the API call failed
    """
    package = (catalog or load_catalog()).get(package_id)

    if not settings.stripe_secret_key:
        raise UpstreamError("Payment processing not configured. Please contact support.")

    try:
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            line_items=[
                {
                    "price_data": {
                        "currency": settings.stripe_currency,
                        "product_data": {
                            "name": f"{package.credits:,} Lead Credits",
                            "description": f"Purchase {package.credits:,} lead credits",
                        },
                        "unit_amount": package.price_cents,
                    },
                    "quantity": 1,
                }
            ],
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            customer_email=user_email,
            metadata={
                "user_id": str(user_id),
                "package_id": package.id,
                "credits": str(package.credits),
            },
        )
    except stripe.StripeError as e:
        logger.error("checkout_session_failed", user_id=user_id, package_id=package_id, error=str(e))
        raise UpstreamError(f"Error creating checkout session: {e}") from e

    (purchases or purchase_service).create_pending(
        user_id=user_id,
        payment_reference=session.id,
        credits=package.credits,
        amount=package.price,
        package_id=package.id,
        currency=settings.stripe_currency,
    )

    logger.info(
        "checkout_session_created",
        user_id=user_id,
        package_id=package_id,
        session_id=session.id,
    )

    return {"session_id": session.id, "url": session.url}


def handle_checkout_completed(
    session: dict[str, Any],
    purchases: PurchaseService | None = None,
) -> CreditPurchase | None:
    """Handle a paid checkout - add credits to user.

    Args:
        session: Checkout session object from the webhook payload

    Returns:
        The completed purchase, or None when nothing was applied
        (duplicate delivery, unpaid session, missing metadata)
    """
    metadata = session.get("metadata") or {}
    if not metadata.get("user_id") or not metadata.get("credits"):
        logger.error("checkout_missing_metadata", session_id=session.get("id"), metadata=metadata)
        return None

    if session.get("payment_status", "paid") not in ("paid", "no_payment_required"):
        # Delayed payment methods complete later via async_payment_succeeded
        logger.info("checkout_awaiting_payment", session_id=session.get("id"))
        return None

    amount_paid = (Decimal(session.get("amount_total") or 0) / 100).quantize(Decimal("0.01"))

    return (purchases or purchase_service).complete_purchase(
        payment_reference=session["id"],
        user_id=int(metadata["user_id"]),
        credits=int(metadata["credits"]),
        amount=amount_paid,
        package_id=metadata.get("package_id"),
        currency=session.get("currency") or settings.stripe_currency,
    )


def handle_checkout_failed(
    session: dict[str, Any],
    purchases: PurchaseService | None = None,
) -> CreditPurchase | None:
    """Handle an expired or declined checkout."""
    return (purchases or purchase_service).fail_purchase(session["id"])


def verify_webhook_signature(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and parse a Stripe webhook event.

    Args:
        payload: Raw request body
        sig_header: Stripe-Signature header value

    Returns:
        Verified Stripe event

    Raises:
        ValidationError: If signature is invalid
    """
    if not settings.stripe_webhook_secret:
        raise UpstreamError("Stripe webhook secret not configured")

    try:
        return stripe.Webhook.construct_event(
            payload,
            sig_header,
            settings.stripe_webhook_secret,
        )
    except (stripe.SignatureVerificationError, ValueError) as e:
        raise ValidationError(f"Invalid webhook signature: {e}") from e
