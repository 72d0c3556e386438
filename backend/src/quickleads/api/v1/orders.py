"""Customer order endpoints."""

from fastapi import APIRouter, Depends, Request, status

from quickleads.api.rate_limit import ORDER_LIMIT, limiter
from quickleads.api.schemas import CreateOrderRequest, OrderResponse
from quickleads.auth.middleware import require_auth
from quickleads.orders.service import order_service
from quickleads.storage.models import UserAccount

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(ORDER_LIMIT)
async def create_order(
    request: Request,
    body: CreateOrderRequest,
    user: UserAccount = Depends(require_auth),
):
    """Spend credits on a lead export.

    Returns 402 when the balance does not cover ``credits_used``.
    """
    return order_service.create_order(
        user_id=user.id,
        search_url=body.search_url,
        credits_used=body.credits_used,
        estimated_leads=body.estimated_leads,
        delivery_email=body.delivery_email,
    )


@router.get("", response_model=list[OrderResponse])
async def list_orders(user: UserAccount = Depends(require_auth)):
    return order_service.get_user_orders(user.id)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: int, user: UserAccount = Depends(require_auth)):
    # Scoped to the caller: other users' orders are 404
    return order_service.get_order_by_id(order_id, user_id=user.id)
