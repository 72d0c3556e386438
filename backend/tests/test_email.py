"""
Tests for the Postmark email service and the notification dispatcher.
"""
import json

import httpx
import pytest

from quickleads.email.dispatcher import NotificationDispatcher, NotificationKind
from quickleads.email.service import EmailService
from quickleads.orders.service import OrderService


def _service(handler) -> EmailService:
    return EmailService(
        server_token="pm-test-token",
        from_email="noreply@quickleads.test",
        transport=httpx.MockTransport(handler),
    )


class TestEmailService:

    @pytest.mark.asyncio
    async def test_posts_plain_text_to_postmark(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"MessageID": "abc-123"})

        sent = await _service(handler).send_order_completed_email("kim@example.com", "Kim", 5000)

        assert sent is True
        [request] = requests
        assert str(request.url) == EmailService.POSTMARK_API_URL
        assert request.headers["X-Postmark-Server-Token"] == "pm-test-token"
        body = json.loads(request.content)
        assert body["To"] == "kim@example.com"
        assert body["From"] == "noreply@quickleads.test"
        assert "5,000 leads" in body["TextBody"]

    @pytest.mark.asyncio
    async def test_provider_error_returns_false(self):
        service = _service(lambda request: httpx.Response(422, json={"ErrorCode": 300}))
        assert await service.send_verification_email("kim@example.com", "Kim", "tok") is False

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        assert await _service(handler).send_password_reset_email("kim@example.com", "Kim", "tok") is False

    @pytest.mark.asyncio
    async def test_dev_mode_logs_instead_of_sending(self):
        service = EmailService(server_token="")
        assert service.enabled is False
        assert await service.send_credits_purchase_email("kim@example.com", "Kim", 10000, 19.0) is True

    @pytest.mark.asyncio
    async def test_new_order_alert_goes_to_admin_inbox(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, json={})

        await _service(handler).send_new_order_notification_email(
            order_id=7,
            customer_email="kim@example.com",
            customer_name="Kim Lee",
            search_url="https://example.com/search",
            credits_used=1000,
        )

        assert requests[0]["Subject"] == "New order received - 7"
        assert "Kim Lee (kim@example.com)" in requests[0]["TextBody"]


class RecordingSender:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def send_order_completed_email(self, **context):
        self.calls.append(context)
        if self.fail:
            raise RuntimeError("smtp exploded")
        return True

    async def send_new_order_notification_email(self, **context):
        raise RuntimeError("smtp exploded")


class TestNotificationDispatcher:

    def test_runs_in_place_without_event_loop(self):
        sender = RecordingSender()
        NotificationDispatcher(sender).dispatch(
            NotificationKind.ORDER_COMPLETED, to_email="a@b.test", first_name="A", credits_used=1
        )
        assert sender.calls == [{"to_email": "a@b.test", "first_name": "A", "credits_used": 1}]

    @pytest.mark.asyncio
    async def test_detached_inside_event_loop(self):
        sender = RecordingSender()
        dispatcher = NotificationDispatcher(sender)

        dispatcher.dispatch(NotificationKind.ORDER_COMPLETED, to_email="a@b.test", first_name="A", credits_used=1)
        assert sender.calls == []

        await dispatcher.drain()
        assert len(sender.calls) == 1

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self):
        dispatcher = NotificationDispatcher(RecordingSender(fail=True))

        dispatcher.dispatch(NotificationKind.ORDER_COMPLETED, to_email="a@b.test", first_name="A", credits_used=1)
        await dispatcher.drain()

    def test_failing_alert_does_not_break_order(self, make_user):
        user = make_user(credits=1000)
        service = OrderService(notifier=NotificationDispatcher(RecordingSender(fail=True)))

        order = service.create_order(user.id, "https://example.com/search", 100)

        assert order.id is not None
