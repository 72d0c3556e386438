"""Affiliate payout administration (admin role)."""

from fastapi import APIRouter, Depends

from quickleads.affiliate.commissions import commission_service
from quickleads.api.schemas import CommissionResponse, MarkPaidRequest
from quickleads.auth.middleware import require_admin
from quickleads.logging_config import get_logger
from quickleads.storage.models import UserAccount

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/affiliate", tags=["admin"])


@router.get("/commissions/pending", response_model=list[CommissionResponse])
async def pending_commissions(user: UserAccount = Depends(require_admin)):
    return [
        CommissionResponse(
            id=c.id,
            affiliate_user_id=c.affiliate_user_id,
            affiliate_name=c.affiliate.full_name if c.affiliate else None,
            affiliate_email=c.affiliate.email if c.affiliate else None,
            paypal_email=c.affiliate.paypal_email if c.affiliate else None,
            referred_user_id=c.referred_user_id,
            referred_user_name=c.referred.full_name if c.referred else None,
            purchase_id=c.purchase_id,
            sale_amount=c.sale_amount,
            commission_amount=c.commission_amount,
            status=c.status.value,
            created_at=c.created_at,
        )
        for c in commission_service.get_all_pending_commissions()
    ]


@router.get("/bills")
async def monthly_bills(user: UserAccount = Depends(require_admin)):
    """Pending commissions grouped by month and affiliate."""
    return {"bills": [bill.to_dict() for bill in commission_service.get_monthly_bills()]}


@router.post("/commissions/mark-paid")
async def mark_paid(body: MarkPaidRequest, user: UserAccount = Depends(require_admin)):
    updated = commission_service.mark_commissions_paid(body.commission_ids, body.payment_month)
    logger.info("commissions_paid_by", admin=user.email, count=updated)
    return {"updated": updated}
