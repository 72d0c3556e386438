"""Order workflow: credits in, delivered lead export out."""

from datetime import datetime
from urllib.parse import urlparse

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from quickleads.auth.credits import CreditService, credit_service as default_credit_service
from quickleads.email.dispatcher import NotificationDispatcher, NotificationKind, notifier as default_notifier
from quickleads.errors import NotFoundError, ValidationError
from quickleads.logging_config import get_logger
from quickleads.storage.db import db
from quickleads.storage.models import DeliveryType, Order, OrderStatus, UserAccount

logger = get_logger(__name__)


def _validate_url(url: str, field: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ValidationError(f"{field} is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{field} must be an http(s) URL")
    return url


class OrderService:
    """Service for creating and fulfilling lead orders.

    Lifecycle: pending -> processing -> completed | failed
    """

    def __init__(
        self,
        credits: CreditService | None = None,
        notifier: NotificationDispatcher | None = None,
    ):
        self.credits = credits or default_credit_service
        self.notifier = notifier or default_notifier
        self.logger = get_logger(__name__)

    def create_order(
        self,
        user_id: int,
        search_url: str,
        credits_used: int,
        estimated_leads: int | None = None,
        delivery_email: str | None = None,
    ) -> Order:
        """Create an order and pay for it with credits.

        The deduction and the insert share one transaction: either both land
        or neither does.

        Args:
            user_id: Ordering user
            search_url: Search URL describing the leads to export
            credits_used: Credits to spend
            estimated_leads: Optional lead estimate shown to the team
            delivery_email: Where to deliver (defaults to the account email)

        Returns:
            The pending order

        Raises:
            ValidationError: On malformed input
            InsufficientCreditsError: If the balance is below credits_used
        """
        search_url = _validate_url(search_url, "Search URL")
        if credits_used is None or credits_used <= 0:
            raise ValidationError("Credits used must be positive")
        if estimated_leads is not None and estimated_leads < 0:
            raise ValidationError("Estimated leads cannot be negative")

        with db.session() as session:
            user = session.get(UserAccount, user_id)
            if not user:
                raise NotFoundError(f"User {user_id} not found")

            self.credits.deduct_credits(user_id, credits_used, session=session)

            order = Order(
                user_id=user_id,
                search_url=search_url,
                credits_used=credits_used,
                estimated_leads=estimated_leads,
                delivery_email=(delivery_email or user.email).strip().lower(),
                status=OrderStatus.PENDING,
            )
            session.add(order)
            session.flush()

            customer_email = user.email
            customer_name = user.full_name

        self.logger.info("order_created", order_id=order.id, user_id=user_id, credits_used=credits_used)

        self.notifier.dispatch(
            NotificationKind.NEW_ORDER_ALERT,
            order_id=order.id,
            customer_email=customer_email,
            customer_name=customer_name,
            search_url=search_url,
            credits_used=credits_used,
        )
        return order

    def start_processing(self, order_id: int, assigned_to: str) -> Order:
        """Claim a pending order for a team member."""
        if not assigned_to:
            raise ValidationError("Assignee is required")

        with db.session() as session:
            order = self._transition(
                session,
                order_id,
                allowed=(OrderStatus.PENDING,),
                status=OrderStatus.PROCESSING,
                assigned_to=assigned_to,
            )

        self.logger.info("order_processing", order_id=order_id, assigned_to=assigned_to)
        return order

    def fulfill_order(
        self,
        order_id: int,
        delivery_url: str,
        delivery_type: DeliveryType | str | None = None,
        notes: str | None = None,
    ) -> Order:
        """Close an order with its delivery link.

        A completed order can be fulfilled again to replace its delivery.

        Raises:
            NotFoundError: Unknown order
            ValidationError: Missing delivery URL or order already failed
        """
        if not delivery_url or not delivery_url.strip():
            raise ValidationError("Delivery URL is required")
        delivery_url = _validate_url(delivery_url, "Delivery URL")
        if delivery_type is not None:
            try:
                delivery_type = DeliveryType(delivery_type)
            except ValueError:
                raise ValidationError(f"Invalid delivery type: {delivery_type}")

        with db.session() as session:
            order = self._transition(
                session,
                order_id,
                allowed=(OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.COMPLETED),
                status=OrderStatus.COMPLETED,
                delivery_url=delivery_url,
                delivery_type=delivery_type,
                notes=notes,
                completed_at=datetime.utcnow(),
            )

            customer = session.get(UserAccount, order.user_id)
            recipient = (customer.email, customer.first_name) if customer else None

        self.logger.info("order_fulfilled", order_id=order_id, delivery_type=delivery_type)

        if recipient:
            self.notifier.dispatch(
                NotificationKind.ORDER_COMPLETED,
                to_email=recipient[0],
                first_name=recipient[1],
                credits_used=order.credits_used,
            )
        return order

    def fail_order(self, order_id: int, error_message: str, refund: bool = True) -> Order:
        """Reject an order the team cannot deliver.

        Only pending or processing orders can fail. With ``refund`` the spent
        credits return to the customer in the same transaction, and only
        when this call is the one that moved the order to failed.
        """
        if not error_message or not error_message.strip():
            raise ValidationError("Error message is required")

        with db.session() as session:
            order = self._transition(
                session,
                order_id,
                allowed=(OrderStatus.PENDING, OrderStatus.PROCESSING),
                status=OrderStatus.FAILED,
                error_message=error_message.strip(),
            )
            if refund:
                self.credits.add_credits(order.user_id, order.credits_used, session=session)

        self.logger.warning("order_failed", order_id=order_id, refunded=refund, reason=error_message)
        return order

    def get_user_orders(self, user_id: int) -> list[Order]:
        """Get a user's orders, newest first."""
        with db.session() as session:
            return list(
                session.scalars(
                    select(Order)
                    .where(Order.user_id == user_id)
                    .order_by(Order.created_at.desc(), Order.id.desc())
                )
            )

    def get_order_by_id(self, order_id: int, user_id: int | None = None) -> Order:
        """Get one order.

        Args:
            order_id: Order ID
            user_id: When given, the order must belong to this user

        Raises:
            NotFoundError: Unknown order, or owned by someone else
        """
        with db.session() as session:
            order = session.get(Order, order_id)
            if not order or (user_id is not None and order.user_id != user_id):
                raise NotFoundError("Order not found")
            return order

    def get_all_orders(self, status: OrderStatus | None = None) -> list[Order]:
        """Get every order (team dashboard), newest first."""
        with db.session() as session:
            query = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
            if status is not None:
                query = query.where(Order.status == status)
            return list(session.scalars(query))

    @staticmethod
    def _transition(session: Session, order_id: int, allowed: tuple[OrderStatus, ...], **values) -> Order:
        """Move an order out of one of the ``allowed`` statuses.

        The status check and the write are one conditional UPDATE, so of two
        racing transitions only one can match.
        """
        result = session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_(allowed))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        order = session.get(Order, order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        if result.rowcount != 1:
            raise ValidationError(f"Order {order_id} is already {order.status.value}")
        return order


# Singleton instance
order_service = OrderService()
