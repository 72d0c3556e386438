"""Affiliate API v1 endpoints."""

from fastapi import APIRouter, Depends

from quickleads.affiliate.commissions import commission_service
from quickleads.affiliate.service import affiliate_service
from quickleads.api.schemas import PaypalEmailRequest
from quickleads.auth.middleware import require_auth
from quickleads.settings import settings
from quickleads.storage.models import UserAccount

router = APIRouter(prefix="/affiliate", tags=["affiliate"])


def _link(code: str) -> str:
    return f"{settings.base_url}/ref/{code}"


@router.post("/generate-code")
async def generate_code(user: UserAccount = Depends(require_auth)):
    """Create (or replace) the caller's affiliate code."""
    code = affiliate_service.generate_affiliate_code(user.id)
    return {"code": code, "link": _link(code)}


@router.put("/paypal")
async def update_paypal(body: PaypalEmailRequest, user: UserAccount = Depends(require_auth)):
    affiliate_service.update_paypal_email(user.id, body.paypal_email)
    return {"paypal_email": body.paypal_email}


@router.get("/stats")
async def get_stats(user: UserAccount = Depends(require_auth)):
    """Clicks, referrals, sales and commission totals for the caller."""
    stats = commission_service.get_user_affiliate_stats(user.id)
    if stats["affiliate_code"]:
        stats["link"] = _link(stats["affiliate_code"])
    return stats


@router.get("/referred-users")
async def get_referred_users(user: UserAccount = Depends(require_auth)):
    return {"users": affiliate_service.get_referred_users(user.id)}


@router.get("/sales")
async def get_sales(user: UserAccount = Depends(require_auth)):
    return {"sales": affiliate_service.get_affiliate_sales(user.id)}
