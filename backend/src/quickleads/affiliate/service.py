"""Affiliate service for referral codes, click tracking and referral lookups."""

import secrets
import string
from datetime import datetime
from typing import Any

from sqlalchemy import select

from quickleads.errors import NotFoundError, ValidationError
from quickleads.logging_config import get_logger
from quickleads.storage.db import db
from quickleads.storage.models import AffiliateClick, AffiliateCommission, UserAccount

logger = get_logger(__name__)

CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 10


def generate_code(length: int = CODE_LENGTH) -> str:
    """Generate a short uppercase referral code, e.g. ``K3X9QA``."""
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


class AffiliateService:
    """Service for managing affiliate codes and referrals."""

    def __init__(self):
        """Initialize affiliate service."""
        self.logger = get_logger(__name__)

    def generate_affiliate_code(self, user_id: int) -> str:
        """Assign a fresh affiliate code to a user.

        A user who already has a code gets a new one; the old code stops
        resolving. Candidates are checked against existing codes and retried.

        Returns:
            The new code

        Raises:
            NotFoundError: Unknown user
            ValidationError: No free code found after MAX_CODE_ATTEMPTS
        """
        with db.session() as session:
            user = session.get(UserAccount, user_id)
            if not user:
                raise NotFoundError(f"User {user_id} not found")

            for _ in range(MAX_CODE_ATTEMPTS):
                code = generate_code()
                taken = session.scalar(select(UserAccount.id).where(UserAccount.affiliate_code == code))
                if taken is None:
                    break
            else:
                raise ValidationError("Could not allocate a unique affiliate code, please retry")

            previous = user.affiliate_code
            user.affiliate_code = code
            user.updated_at = datetime.utcnow()

        self.logger.info("affiliate_code_generated", user_id=user_id, code=code, replaced=previous)
        return code

    def resolve_code(self, code: str | None) -> UserAccount | None:
        """Find the affiliate owning ``code``.

        Returns:
            The affiliate, or None for empty or unknown codes
        """
        code = normalize_code(code)
        if not code:
            return None

        with db.session() as session:
            return session.scalar(select(UserAccount).where(UserAccount.affiliate_code == code))

    def track_click(
        self,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        referrer_url: str | None = None,
    ) -> AffiliateClick:
        """Record a referral link visit.

        The code is stored as given (normalised); it is not validated.
        """
        with db.session() as session:
            click = AffiliateClick(
                affiliate_code=normalize_code(code)[:20],
                ip_address=ip_address,
                user_agent=user_agent,
                referrer_url=referrer_url,
            )
            session.add(click)
            session.flush()

        self.logger.info("affiliate_click_tracked", code=click.affiliate_code)
        return click

    def update_paypal_email(self, user_id: int, paypal_email: str) -> UserAccount:
        """Set the payout destination for an affiliate."""
        paypal_email = (paypal_email or "").strip()
        if not paypal_email:
            raise ValidationError("PayPal email is required")

        with db.session() as session:
            user = session.get(UserAccount, user_id)
            if not user:
                raise NotFoundError(f"User {user_id} not found")

            user.paypal_email = paypal_email
            user.updated_at = datetime.utcnow()

        self.logger.info("paypal_email_updated", user_id=user_id)
        return user

    def get_referred_users(self, user_id: int) -> list[dict[str, Any]]:
        """List users who registered through this affiliate, newest first."""
        with db.session() as session:
            rows = session.execute(
                select(UserAccount.first_name, UserAccount.created_at)
                .where(UserAccount.referred_by == user_id)
                .order_by(UserAccount.created_at.desc())
            ).all()

        return [{"first_name": first_name, "created_at": created_at} for first_name, created_at in rows]

    def get_affiliate_sales(self, user_id: int) -> list[dict[str, Any]]:
        """List this affiliate's commissions with the buyer's first name."""
        with db.session() as session:
            rows = session.execute(
                select(AffiliateCommission, UserAccount.first_name)
                .join(UserAccount, UserAccount.id == AffiliateCommission.referred_user_id)
                .where(AffiliateCommission.affiliate_user_id == user_id)
                .order_by(AffiliateCommission.created_at.desc(), AffiliateCommission.id.desc())
            ).all()

        return [
            {
                "id": commission.id,
                "purchase_id": commission.purchase_id,
                "sale_amount": commission.sale_amount,
                "commission_amount": commission.commission_amount,
                "status": commission.status.value,
                "payment_month": commission.payment_month,
                "created_at": commission.created_at,
                "referred_user_name": first_name or "Unknown",
            }
            for commission, first_name in rows
        ]


# Singleton instance
affiliate_service = AffiliateService()
