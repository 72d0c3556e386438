"""Response and request models shared by the v1 routers."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from quickleads.storage.models import DeliveryType, OrderStatus, PurchaseStatus


class OrderResponse(BaseModel):
    """Order as returned to customers and the team."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    search_url: str
    credits_used: int
    estimated_leads: int | None = None
    delivery_email: str
    status: OrderStatus
    delivery_type: DeliveryType | None = None
    delivery_url: str | None = None
    notes: str | None = None
    assigned_to: str | None = None
    error_message: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class PurchaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    package_id: str | None = None
    credits: int
    amount: Decimal
    currency: str
    status: PurchaseStatus
    created_at: datetime
    completed_at: datetime | None = None


class CommissionResponse(BaseModel):
    """Pending commission with both parties, for the payout screen."""
    id: int
    affiliate_user_id: int
    affiliate_name: str | None = None
    affiliate_email: str | None = None
    paypal_email: str | None = None
    referred_user_id: int
    referred_user_name: str | None = None
    purchase_id: int
    sale_amount: Decimal
    commission_amount: Decimal
    status: str
    created_at: datetime


class CreateOrderRequest(BaseModel):
    search_url: str = Field(..., min_length=1, max_length=4000)
    credits_used: int = Field(..., gt=0)
    estimated_leads: int | None = Field(default=None, ge=0)
    delivery_email: EmailStr | None = None


class CheckoutRequest(BaseModel):
    package_id: str
    success_url: str | None = None
    cancel_url: str | None = None


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


class PaypalEmailRequest(BaseModel):
    paypal_email: EmailStr


class StartOrderRequest(BaseModel):
    assigned_to: str | None = Field(default=None, max_length=255)


class FulfillOrderRequest(BaseModel):
    delivery_url: str = Field(..., min_length=1, max_length=1000)
    delivery_type: DeliveryType | None = None
    notes: str | None = None


class FailOrderRequest(BaseModel):
    error_message: str = Field(..., min_length=1)
    refund: bool = True


class AssignCreditsRequest(BaseModel):
    email: EmailStr
    credits: int = Field(..., gt=0)


class MarkPaidRequest(BaseModel):
    commission_ids: list[int]
    payment_month: str | None = None
