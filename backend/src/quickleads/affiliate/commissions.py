"""Affiliate commissions: creation, statistics, monthly bills and payouts."""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session, selectinload

from quickleads.errors import NotFoundError, ValidationError
from quickleads.logging_config import get_logger
from quickleads.storage.db import db
from quickleads.storage.models import (
    AffiliateClick,
    AffiliateCommission,
    CommissionStatus,
    CreditPurchase,
    UserAccount,
)

logger = get_logger(__name__)

COMMISSION_RATE = Decimal("0.15")
CENT = Decimal("0.01")
PAYOUT_DAY = 5  # Bills are paid by the 5th of the following month

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def _money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_commission(sale_amount: Decimal | float | str) -> Decimal:
    """Flat-rate commission, rounded half-up to cents (19.00 -> 2.85)."""
    return (Decimal(str(sale_amount)) * COMMISSION_RATE).quantize(CENT, rounding=ROUND_HALF_UP)


def current_payment_month(now: datetime | None = None) -> str:
    """The month a payout is processed in, as YYYY-MM."""
    return (now or datetime.utcnow()).strftime("%Y-%m")


def _pay_by(month: str) -> date:
    year, mon = (int(part) for part in month.split("-"))
    if mon == 12:
        return date(year + 1, 1, PAYOUT_DAY)
    return date(year, mon + 1, PAYOUT_DAY)


@dataclass
class AffiliateBill:
    """One affiliate's share of a monthly bill."""

    affiliate_id: int
    affiliate_name: str | None = None
    affiliate_email: str | None = None
    paypal_email: str | None = None
    total_commissions: Decimal = Decimal("0.00")
    total_sales: Decimal = Decimal("0.00")
    transaction_count: int = 0
    commission_ids: list[int] = field(default_factory=list)

    def add(self, commission: Any) -> None:
        self.total_commissions += _money(commission.commission_amount)
        self.total_sales += _money(commission.sale_amount)
        self.transaction_count += 1
        self.commission_ids.append(commission.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "affiliate_id": self.affiliate_id,
            "affiliate_name": self.affiliate_name,
            "affiliate_email": self.affiliate_email,
            "paypal_email": self.paypal_email,
            "total_commissions": float(self.total_commissions),
            "total_sales": float(self.total_sales),
            "transaction_count": self.transaction_count,
            "commission_ids": list(self.commission_ids),
        }


@dataclass
class MonthlyBill:
    """All pending commissions earned in one calendar month."""

    month: str
    total_commissions: Decimal = Decimal("0.00")
    total_sales: Decimal = Decimal("0.00")
    transaction_count: int = 0
    commission_ids: list[int] = field(default_factory=list)
    affiliates: dict[int, AffiliateBill] = field(default_factory=dict)

    @property
    def month_name(self) -> str:
        return datetime.strptime(self.month, "%Y-%m").strftime("%B %Y")

    @property
    def pay_by(self) -> date:
        return _pay_by(self.month)

    def add(self, commission: Any) -> None:
        self.total_commissions += _money(commission.commission_amount)
        self.total_sales += _money(commission.sale_amount)
        self.transaction_count += 1
        self.commission_ids.append(commission.id)

        affiliate_id = commission.affiliate_user_id
        bill = self.affiliates.get(affiliate_id)
        if bill is None:
            affiliate = getattr(commission, "affiliate", None)
            bill = AffiliateBill(
                affiliate_id=affiliate_id,
                affiliate_name=affiliate.full_name if affiliate else None,
                affiliate_email=affiliate.email if affiliate else None,
                paypal_email=affiliate.paypal_email if affiliate else None,
            )
            self.affiliates[affiliate_id] = bill
        bill.add(commission)

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "month_name": self.month_name,
            "pay_by": self.pay_by.isoformat(),
            "total_commissions": float(self.total_commissions),
            "total_sales": float(self.total_sales),
            "transaction_count": self.transaction_count,
            "commission_ids": list(self.commission_ids),
            "affiliates": [bill.to_dict() for bill in self.affiliates.values()],
        }


def group_monthly_bills(commissions: Iterable[Any]) -> list[MonthlyBill]:
    """Group commissions by the month they were created, newest month first.

    ``payment_month`` is ignored: it stays empty until a bill is paid.
    """
    bills: dict[str, MonthlyBill] = {}
    for commission in commissions:
        month = commission.created_at.strftime("%Y-%m")
        bill = bills.get(month)
        if bill is None:
            bill = bills[month] = MonthlyBill(month=month)
        bill.add(commission)

    return sorted(bills.values(), key=lambda b: b.month, reverse=True)


class CommissionService:
    """Service for affiliate commissions."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def record_for_purchase(
        self,
        session: Session,
        purchase: CreditPurchase,
        purchaser: UserAccount,
    ) -> AffiliateCommission | None:
        """Create the pending commission a completed purchase earns.

        Runs inside the caller's payment transaction. Purchases by users who
        were not referred, self-referrals and purchases that already carry a
        commission produce nothing.
        """
        affiliate_id = purchaser.referred_by
        if affiliate_id is None or affiliate_id == purchaser.id:
            return None

        existing = session.scalar(
            select(AffiliateCommission.id).where(AffiliateCommission.purchase_id == purchase.id)
        )
        if existing is not None:
            return None

        sale_amount = _money(purchase.amount)
        commission = AffiliateCommission(
            affiliate_user_id=affiliate_id,
            referred_user_id=purchaser.id,
            purchase_id=purchase.id,
            sale_amount=sale_amount,
            commission_amount=calculate_commission(sale_amount),
            commission_rate=COMMISSION_RATE,
            status=CommissionStatus.PENDING,
        )
        session.add(commission)
        session.flush()

        self.logger.info(
            "affiliate_commission_created",
            commission_id=commission.id,
            affiliate_id=affiliate_id,
            referred_id=purchaser.id,
            amount=str(commission.commission_amount),
        )
        return commission

    def get_user_affiliate_stats(self, user_id: int) -> dict[str, Any]:
        """Aggregate an affiliate's clicks, referrals and commissions.

        Returns:
            Dict with total_clicks, total_referrals, total_sales,
            total_commissions, pending_commissions and monthly
            (grouped by payment month and status; unpaid rows excluded)
        """
        with db.session() as session:
            user = session.get(UserAccount, user_id)
            if not user:
                raise NotFoundError(f"User {user_id} not found")

            total_clicks = 0
            if user.affiliate_code:
                total_clicks = session.scalar(
                    select(func.count(AffiliateClick.id)).where(
                        AffiliateClick.affiliate_code == user.affiliate_code
                    )
                ) or 0

            total_referrals = session.scalar(
                select(func.count(UserAccount.id)).where(UserAccount.referred_by == user_id)
            ) or 0

            total_sales, total_commissions, pending = session.execute(
                select(
                    func.coalesce(func.sum(AffiliateCommission.sale_amount), 0),
                    func.coalesce(func.sum(AffiliateCommission.commission_amount), 0),
                    func.coalesce(
                        func.sum(
                            case(
                                (
                                    AffiliateCommission.status == CommissionStatus.PENDING,
                                    AffiliateCommission.commission_amount,
                                ),
                                else_=0,
                            )
                        ),
                        0,
                    ),
                ).where(AffiliateCommission.affiliate_user_id == user_id)
            ).one()

            monthly = session.execute(
                select(
                    AffiliateCommission.payment_month,
                    AffiliateCommission.status,
                    func.sum(AffiliateCommission.commission_amount),
                )
                .where(
                    AffiliateCommission.affiliate_user_id == user_id,
                    AffiliateCommission.payment_month.is_not(None),
                )
                .group_by(AffiliateCommission.payment_month, AffiliateCommission.status)
                .order_by(AffiliateCommission.payment_month.desc())
            ).all()

        return {
            "affiliate_code": user.affiliate_code,
            "total_clicks": int(total_clicks),
            "total_referrals": int(total_referrals),
            "total_sales": float(_money(total_sales)),
            "total_commissions": float(_money(total_commissions)),
            "pending_commissions": float(_money(pending)),
            "monthly": [
                {"month": month, "status": status.value, "amount": float(_money(amount))}
                for month, status, amount in monthly
            ],
        }

    def get_all_pending_commissions(self) -> list[AffiliateCommission]:
        """Pending commissions with affiliate and referred user, newest first."""
        with db.session() as session:
            return list(
                session.scalars(
                    select(AffiliateCommission)
                    .options(
                        selectinload(AffiliateCommission.affiliate),
                        selectinload(AffiliateCommission.referred),
                    )
                    .where(AffiliateCommission.status == CommissionStatus.PENDING)
                    .order_by(AffiliateCommission.created_at.desc(), AffiliateCommission.id.desc())
                )
            )

    def get_monthly_bills(self) -> list[MonthlyBill]:
        """Pending commissions grouped into monthly bills."""
        return group_monthly_bills(self.get_all_pending_commissions())

    def mark_commissions_paid(self, commission_ids: Iterable[int], payment_month: str | None = None) -> int:
        """Mark commissions as paid in bulk.

        Args:
            commission_ids: Commissions to settle; may span affiliates and months
            payment_month: Month the payout is processed in (defaults to now)

        Returns:
            Number of commissions updated
        """
        ids = sorted({int(commission_id) for commission_id in commission_ids or []})
        if not ids:
            raise ValidationError("Commission IDs are required")

        payment_month = payment_month or current_payment_month()
        if not _MONTH_RE.match(payment_month):
            raise ValidationError("Payment month must be formatted YYYY-MM")

        with db.session() as session:
            result = session.execute(
                update(AffiliateCommission)
                .where(AffiliateCommission.id.in_(ids))
                .values(
                    status=CommissionStatus.PAID,
                    payment_month=payment_month,
                    paid_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount

        self.logger.info("commissions_marked_paid", count=updated, payment_month=payment_month)
        return updated


# Singleton instance
commission_service = CommissionService()
