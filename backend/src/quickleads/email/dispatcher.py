"""Fire-and-forget notification dispatch.

Services hand notifications to the dispatcher and return immediately. Delivery
runs as a detached task, and any failure is logged here, so a broken mail
provider can never fail an order, a fulfillment or a payment.
"""

import asyncio
from enum import Enum
from typing import Any

from quickleads.email.service import EmailService, email_service
from quickleads.logging_config import get_logger

logger = get_logger(__name__)


class NotificationKind(str, Enum):
    """Transactional notifications the storefront sends."""
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"
    ORDER_COMPLETED = "order_completed"
    PURCHASE_CONFIRMATION = "purchase_confirmation"
    NEW_ORDER_ALERT = "new_order_alert"


_SENDERS = {
    NotificationKind.VERIFICATION: "send_verification_email",
    NotificationKind.PASSWORD_RESET: "send_password_reset_email",
    NotificationKind.ORDER_COMPLETED: "send_order_completed_email",
    NotificationKind.PURCHASE_CONFIRMATION: "send_credits_purchase_email",
    NotificationKind.NEW_ORDER_ALERT: "send_new_order_notification_email",
}


class NotificationDispatcher:
    """Detaches email delivery from the operation that triggers it."""

    def __init__(self, sender: EmailService | None = None):
        self.sender = sender or email_service
        self._pending: set[asyncio.Task] = set()

    def dispatch(self, kind: NotificationKind, **context: Any) -> None:
        """Queue a notification; never raises on delivery problems.

        Inside a running event loop the delivery becomes a background task.
        Outside one (CLI, worker threads) it runs to completion in place.
        """
        coro = self._deliver(kind, context)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coro)
            return

        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, kind: NotificationKind, context: dict[str, Any]) -> bool:
        send = getattr(self.sender, _SENDERS[kind])
        try:
            delivered = await send(**context)
        except Exception as e:
            logger.error("notification_failed", kind=kind.value, error=str(e))
            return False

        if not delivered:
            logger.warning("notification_not_delivered", kind=kind.value)
        return delivered

    async def drain(self) -> None:
        """Wait for in-flight notifications (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending))


# Singleton instance
notifier = NotificationDispatcher()
