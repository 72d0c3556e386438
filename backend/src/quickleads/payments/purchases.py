"""Credit purchase bookkeeping.

Completing a payment grants credits, marks the purchase and creates the
affiliate commission. All three happen in one transaction, gated by a
conditional update on the external payment reference, so replayed or
overlapping webhook deliveries apply at most once.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from quickleads.affiliate.commissions import CommissionService, commission_service as default_commission_service
from quickleads.auth.credits import CreditService, credit_service as default_credit_service
from quickleads.email.dispatcher import NotificationDispatcher, NotificationKind, notifier as default_notifier
from quickleads.errors import NotFoundError, ValidationError
from quickleads.logging_config import get_logger
from quickleads.storage.db import db
from quickleads.storage.models import CreditPurchase, PurchaseStatus, UserAccount

logger = get_logger(__name__)


class PurchaseService:
    """Service for recording credit purchases."""

    def __init__(
        self,
        credits: CreditService | None = None,
        commissions: CommissionService | None = None,
        notifier: NotificationDispatcher | None = None,
    ):
        self.credits = credits or default_credit_service
        self.commissions = commissions or default_commission_service
        self.notifier = notifier or default_notifier
        self.logger = get_logger(__name__)

    def create_pending(
        self,
        user_id: int,
        payment_reference: str,
        credits: int,
        amount: Decimal,
        package_id: str | None = None,
        currency: str = "usd",
    ) -> CreditPurchase:
        """Record a checkout that has not been paid yet."""
        with db.session() as session:
            purchase = CreditPurchase(
                user_id=user_id,
                package_id=package_id,
                payment_reference=payment_reference,
                credits=credits,
                amount=amount,
                currency=currency,
                status=PurchaseStatus.PENDING,
            )
            session.add(purchase)
            session.flush()

        self.logger.info("purchase_pending", user_id=user_id, payment_reference=payment_reference)
        return purchase

    def complete_purchase(
        self,
        payment_reference: str,
        user_id: int,
        credits: int,
        amount: Decimal,
        package_id: str | None = None,
        currency: str = "usd",
    ) -> CreditPurchase | None:
        """Apply a successful payment exactly once.

        The purchase row is flipped to completed with one conditional UPDATE.
        Only the delivery whose UPDATE matched grants credits and records the
        commission; overlapping deliveries of the same reference match nothing.

        Args:
            payment_reference: External payment id (idempotency key)
            user_id: Paying user, must match the owner of an existing row
            credits: Credits bought
            amount: Amount actually charged, in major units
            package_id: Catalog package, if known
            currency: ISO currency code

        Returns:
            The completed purchase, or None if this reference was already
            processed

        Raises:
            ValidationError: Bad input, or the reference belongs to another user
            NotFoundError: Unknown user
        """
        if not payment_reference:
            raise ValidationError("Payment reference is required")
        if credits <= 0:
            raise ValidationError("Credits must be positive")

        self._ensure_row(payment_reference, user_id, package_id, currency)

        with db.session() as session:
            flipped = session.execute(
                update(CreditPurchase)
                .where(
                    CreditPurchase.payment_reference == payment_reference,
                    CreditPurchase.status != PurchaseStatus.COMPLETED,
                )
                .values(
                    status=PurchaseStatus.COMPLETED,
                    credits=credits,
                    amount=amount,
                    completed_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                self.logger.info("purchase_already_completed", payment_reference=payment_reference)
                return None

            purchase = session.scalar(
                select(CreditPurchase).where(CreditPurchase.payment_reference == payment_reference)
            )
            if purchase.user_id != user_id:
                # Raising rolls the flip back
                self.logger.warning(
                    "purchase_owner_mismatch",
                    payment_reference=payment_reference,
                    owner_id=purchase.user_id,
                    user_id=user_id,
                )
                raise ValidationError(f"Payment {payment_reference} belongs to another user")

            user = session.get(UserAccount, purchase.user_id)
            new_balance = self.credits.add_credits(purchase.user_id, credits, session=session)
            commission = self.commissions.record_for_purchase(session, purchase, user)

            recipient = (user.email, user.first_name)

        self.logger.info(
            "purchase_completed",
            user_id=user_id,
            payment_reference=payment_reference,
            credits=credits,
            amount=str(amount),
            new_balance=new_balance,
            commission_id=commission.id if commission else None,
        )

        self.notifier.dispatch(
            NotificationKind.PURCHASE_CONFIRMATION,
            to_email=recipient[0],
            first_name=recipient[1],
            credits_purchased=credits,
            amount_paid=float(amount),
        )
        return purchase

    def _ensure_row(
        self,
        payment_reference: str,
        user_id: int,
        package_id: str | None,
        currency: str,
    ) -> None:
        """Insert a pending row for a reference Stripe knows but we never saw."""
        try:
            with db.session() as session:
                exists = session.scalar(
                    select(CreditPurchase.id).where(CreditPurchase.payment_reference == payment_reference)
                )
                if exists is not None:
                    return
                if not session.get(UserAccount, user_id):
                    raise NotFoundError(f"User {user_id} not found")

                session.add(
                    CreditPurchase(
                        user_id=user_id,
                        package_id=package_id,
                        payment_reference=payment_reference,
                        credits=0,
                        amount=Decimal("0.00"),
                        currency=currency,
                        status=PurchaseStatus.PENDING,
                    )
                )
        except IntegrityError:
            # A concurrent delivery inserted the same reference first
            self.logger.info("purchase_insert_raced", payment_reference=payment_reference)

    def fail_purchase(self, payment_reference: str) -> CreditPurchase | None:
        """Mark a pending purchase failed (expired or declined checkout).

        Completed purchases are left untouched.
        """
        with db.session() as session:
            failed = session.execute(
                update(CreditPurchase)
                .where(
                    CreditPurchase.payment_reference == payment_reference,
                    CreditPurchase.status == PurchaseStatus.PENDING,
                )
                .values(status=PurchaseStatus.FAILED)
                .execution_options(synchronize_session=False)
            )
            if failed.rowcount != 1:
                return None
            purchase = session.scalar(
                select(CreditPurchase).where(CreditPurchase.payment_reference == payment_reference)
            )

        self.logger.info("purchase_failed", payment_reference=payment_reference)
        return purchase


# Singleton instance
purchase_service = PurchaseService()
