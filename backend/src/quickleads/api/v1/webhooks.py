"""Webhook endpoints for external services."""

import json

import structlog
from fastapi import APIRouter, HTTPException, Request, status

from quickleads.errors import ValidationError
from quickleads.logging_config import get_logger
from quickleads.payments import stripe_service
from quickleads.settings import settings

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

COMPLETED_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
FAILED_EVENTS = {"checkout.session.expired", "checkout.session.async_payment_failed"}


@router.post("/stripe")
async def stripe_webhook(request: Request):
    """Handle Stripe webhook events.

    Verifies the signature, then applies checkout events. Replays are safe:
    purchases are keyed by the checkout session id. Processing errors answer
    500 so Stripe retries the delivery.
    """
    if not settings.stripe_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhooks not configured",
        )

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        stripe_service.verify_webhook_signature(payload, sig_header)
    except ValidationError as e:
        logger.warning("stripe_webhook_invalid", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    # Signature verified; work with the plain JSON body
    event = json.loads(payload)
    event_id = event.get("id", "")
    event_type = event.get("type", "")
    session_data = event.get("data", {}).get("object", {})

    try:
        with structlog.contextvars.bound_contextvars(stripe_event_id=event_id, stripe_event_type=event_type):
            _apply_event(event_type, session_data)
    except Exception as e:
        logger.error("stripe_webhook_error", event_id=event_id, event_type=event_type, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error processing webhook",
        )

    return {"received": True}


def _apply_event(event_type: str, session_data: dict) -> None:
    if event_type in COMPLETED_EVENTS:
        purchase = stripe_service.handle_checkout_completed(session_data)
        logger.info(
            "stripe_checkout_completed",
            session_id=session_data.get("id"),
            applied=purchase is not None,
        )
    elif event_type in FAILED_EVENTS:
        stripe_service.handle_checkout_failed(session_data)
        logger.info("stripe_checkout_failed", session_id=session_data.get("id"))
    else:
        logger.info("stripe_webhook_unhandled")
