"""Fulfillment team endpoints (team role or higher)."""

from fastapi import APIRouter, Depends

from quickleads.api.schemas import (
    AssignCreditsRequest,
    FailOrderRequest,
    FulfillOrderRequest,
    OrderResponse,
    StartOrderRequest,
)
from quickleads.auth.credits import credit_service
from quickleads.auth.middleware import require_team
from quickleads.logging_config import get_logger
from quickleads.orders.service import order_service
from quickleads.storage.models import OrderStatus, UserAccount

logger = get_logger(__name__)

router = APIRouter(prefix="/team", tags=["team"])


@router.get("/orders", response_model=list[OrderResponse])
async def list_orders(status: OrderStatus | None = None, user: UserAccount = Depends(require_team)):
    return order_service.get_all_orders(status=status)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: int, user: UserAccount = Depends(require_team)):
    return order_service.get_order_by_id(order_id)


@router.post("/orders/{order_id}/start", response_model=OrderResponse)
async def start_order(
    order_id: int,
    body: StartOrderRequest | None = None,
    user: UserAccount = Depends(require_team),
):
    assigned_to = (body.assigned_to if body else None) or user.email
    return order_service.start_processing(order_id, assigned_to)


@router.post("/orders/{order_id}/fulfill", response_model=OrderResponse)
async def fulfill_order(
    order_id: int,
    body: FulfillOrderRequest,
    user: UserAccount = Depends(require_team),
):
    """Deliver an order and notify the customer."""
    order = order_service.fulfill_order(
        order_id,
        delivery_url=body.delivery_url,
        delivery_type=body.delivery_type,
        notes=body.notes,
    )
    logger.info("order_fulfilled_by", order_id=order_id, team_member=user.email)
    return order


@router.post("/orders/{order_id}/fail", response_model=OrderResponse)
async def fail_order(
    order_id: int,
    body: FailOrderRequest,
    user: UserAccount = Depends(require_team),
):
    """Reject an order; credits are refunded unless ``refund`` is false."""
    return order_service.fail_order(order_id, body.error_message, refund=body.refund)


@router.post("/credits/assign")
async def assign_credits(body: AssignCreditsRequest, user: UserAccount = Depends(require_team)):
    target = credit_service.assign_credits_by_email(body.email, body.credits)
    logger.info("credits_assigned_by", team_member=user.email, user_id=target.id, credits=body.credits)
    return {"user_id": target.id, "email": target.email, "credits": target.credits}
