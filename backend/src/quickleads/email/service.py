"""Email service for QuickLeads using the Postmark API."""

from typing import Optional

import httpx

from quickleads.logging_config import get_logger
from quickleads.settings import settings

logger = get_logger(__name__)

SIGNATURE = "The QuickLeads Team"


class EmailService:
    """Email service using Postmark's HTTP API.

    Handles transactional emails:
    - Email verification
    - Password reset
    - Order completed
    - Credit purchase confirmation
    - New order alert (to the fulfillment inbox)
    """

    POSTMARK_API_URL = "https://api.postmarkapp.com/email"

    def __init__(
        self,
        server_token: str | None = None,
        from_email: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize email service.

        Args:
            server_token: Postmark server token (defaults to settings)
            from_email: Sender address (defaults to settings)
            transport: Optional httpx transport, used by tests
        """
        self.server_token = server_token if server_token is not None else settings.postmark_server_token
        self.from_email = from_email or settings.email_from
        self.transport = transport
        self.enabled = bool(self.server_token)

        if not self.enabled:
            logger.warning("email_service_disabled", reason="POSTMARK_SERVER_TOKEN not set")

    async def _send_email(self, to_email: str, subject: str, text_content: str) -> bool:
        """Send a plain-text email via Postmark.

        Without a server token the message is logged instead (development).

        Returns:
            True if sent (or logged) successfully, False otherwise
        """
        if not self.enabled:
            logger.info("email_logged_dev_mode", to=to_email, subject=subject, body=text_content)
            return True

        payload = {
            "From": self.from_email,
            "To": to_email,
            "Subject": subject,
            "TextBody": text_content,
            "MessageStream": "outbound",
        }
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": self.server_token,
        }

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    self.POSTMARK_API_URL,
                    json=payload,
                    headers=headers,
                    timeout=30.0,
                )

                if response.status_code == 200:
                    logger.info(
                        "email_sent",
                        to=to_email,
                        subject=subject,
                        message_id=response.json().get("MessageID"),
                    )
                    return True
                else:
                    logger.error(
                        "email_send_failed",
                        to=to_email,
                        status=response.status_code,
                        body=response.text[:200],
                    )
                    return False

        except httpx.RequestError as e:
            logger.error("email_send_error", to=to_email, error=str(e))
            return False

    async def send_verification_email(self, to_email: str, first_name: str, verification_token: str) -> bool:
        """Send email verification link."""
        verification_url = f"{settings.base_url}/verify-email?token={verification_token}"

        text_content = f"""Hi {first_name},

Thanks for signing up with QuickLeads!

Please verify your email address to unlock your dashboard.

{verification_url}

If you didn't create this account, you can safely ignore this email.

{SIGNATURE}"""

        return await self._send_email(to_email, "Verify your QuickLeads account", text_content)

    async def send_password_reset_email(
        self,
        to_email: str,
        first_name: str,
        reset_token: str,
        expiry_minutes: int = 30,
    ) -> bool:
        """Send password reset link."""
        reset_url = f"{settings.base_url}/reset-password?token={reset_token}"

        text_content = f"""Hi {first_name},

We received a request to reset your QuickLeads password.

Reset your password by clicking this link: {reset_url}

This link will expire in {expiry_minutes} minutes for your security.

If you didn't request a password reset, you can safely ignore this email.

{SIGNATURE}"""

        return await self._send_email(to_email, "Reset your QuickLeads password", text_content)

    async def send_order_completed_email(self, to_email: str, first_name: str, credits_used: int) -> bool:
        """Tell the customer their lead list is ready."""
        text_content = f"""Hi {first_name},

Your order for {credits_used:,} leads has been successfully processed.

You can now log in to your QuickLeads portal to download your lead list.

{SIGNATURE}"""

        return await self._send_email(to_email, "Your QuickLeads order is completed", text_content)

    async def send_credits_purchase_email(
        self,
        to_email: str,
        first_name: str,
        credits_purchased: int,
        amount_paid: float,
    ) -> bool:
        """Confirm a completed credit purchase."""
        text_content = f"""Hi {first_name},

Thank you for your purchase!

{credits_purchased:,} credits have been added to your account.

Amount paid: ${amount_paid:.2f}

You can now log in and start using your credits right away.

{SIGNATURE}"""

        return await self._send_email(to_email, "Your QuickLeads credit purchase is confirmed", text_content)

    async def send_new_order_notification_email(
        self,
        order_id: int,
        customer_email: str,
        customer_name: Optional[str],
        search_url: str,
        credits_used: int,
        to_email: str | None = None,
    ) -> bool:
        """Alert the fulfillment inbox about a new order."""
        text_content = f"""A new order has been placed:

Order ID: {order_id}

Customer: {customer_name or customer_email} ({customer_email})

Search URL: {search_url}

Credits Used: {credits_used:,}

Please process this order in the team dashboard."""

        return await self._send_email(
            to_email or settings.admin_notification_email,
            f"New order received - {order_id}",
            text_content,
        )


# Singleton instance
email_service = EmailService()
