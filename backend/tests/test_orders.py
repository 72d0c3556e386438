"""
Tests for the order workflow.
"""
import threading
import time

import pytest
from sqlalchemy import func, select

from quickleads.auth.credits import credit_service
from quickleads.email.dispatcher import NotificationKind
from quickleads.errors import InsufficientCreditsError, NotFoundError, ValidationError
from quickleads.orders.service import order_service
from quickleads.storage.db import db
from quickleads.storage.models import DeliveryType, Order, OrderStatus

SEARCH_URL = "https://www.linkedin.com/sales/search/people?query=cto"


def _order_count() -> int:
    with db.session() as session:
        return session.scalar(select(func.count(Order.id)))


class TestCreateOrder:

    def test_order_deducts_credits_and_starts_pending(self, make_user, sent):
        user = make_user(email="cust@example.com", credits=5000, first_name="Ada")

        order = order_service.create_order(user.id, SEARCH_URL, 3000, estimated_leads=2500)

        assert order.status == OrderStatus.PENDING
        assert order.credits_used == 3000
        assert order.delivery_email == "cust@example.com"
        assert credit_service.get_balance(user.id) == 2000

        kind, context = sent[-1]
        assert kind == NotificationKind.NEW_ORDER_ALERT
        assert context["order_id"] == order.id
        assert context["customer_email"] == "cust@example.com"

    def test_insufficient_balance_writes_nothing(self, make_user, sent):
        user = make_user(credits=5000)

        with pytest.raises(InsufficientCreditsError):
            order_service.create_order(user.id, SEARCH_URL, 6000)

        assert credit_service.get_balance(user.id) == 5000
        assert _order_count() == 0
        assert sent == []

    @pytest.mark.parametrize("url", ["", "   ", "ftp://example.com/list", "not a url"])
    def test_invalid_search_url(self, make_user, url):
        user = make_user(credits=5000)
        with pytest.raises(ValidationError):
            order_service.create_order(user.id, url, 100)
        assert credit_service.get_balance(user.id) == 5000

    def test_non_positive_credits(self, make_user):
        user = make_user(credits=5000)
        with pytest.raises(ValidationError):
            order_service.create_order(user.id, SEARCH_URL, 0)

    def test_custom_delivery_email(self, make_user):
        user = make_user(credits=100)
        order = order_service.create_order(user.id, SEARCH_URL, 100, delivery_email="Team@Corp.com")
        assert order.delivery_email == "team@corp.com"


class TestOrderLifecycle:

    @pytest.fixture
    def order(self, make_user):
        user = make_user(credits=1000, first_name="Grace")
        return order_service.create_order(user.id, SEARCH_URL, 500)

    def test_pending_to_processing_to_completed(self, order, sent):
        processing = order_service.start_processing(order.id, "ops@quickleads.test")
        assert processing.status == OrderStatus.PROCESSING
        assert processing.assigned_to == "ops@quickleads.test"

        done = order_service.fulfill_order(
            order.id,
            "https://docs.google.com/spreadsheets/d/abc",
            delivery_type="google_sheets",
            notes="2,431 rows",
        )
        assert done.status == OrderStatus.COMPLETED
        assert done.delivery_type == DeliveryType.GOOGLE_SHEETS
        assert done.completed_at is not None

        kind, context = sent[-1]
        assert kind == NotificationKind.ORDER_COMPLETED
        assert context["first_name"] == "Grace"
        assert context["credits_used"] == 500

    def test_start_requires_pending(self, order):
        order_service.start_processing(order.id, "ops")
        with pytest.raises(ValidationError):
            order_service.start_processing(order.id, "ops")

    def test_fulfill_unknown_order(self):
        with pytest.raises(NotFoundError):
            order_service.fulfill_order(12345, "https://files.example.com/leads.csv")

    def test_fulfill_requires_delivery_url(self, order):
        with pytest.raises(ValidationError):
            order_service.fulfill_order(order.id, "  ")

    def test_fulfill_rejects_unknown_delivery_type(self, order):
        with pytest.raises(ValidationError):
            order_service.fulfill_order(order.id, "https://files.example.com/leads.csv", delivery_type="fax")

    def test_fail_refunds_credits(self, order):
        failed = order_service.fail_order(order.id, "Search returned no results")

        assert failed.status == OrderStatus.FAILED
        assert failed.error_message == "Search returned no results"
        assert credit_service.get_balance(order.user_id) == 1000

    def test_fail_without_refund(self, order):
        order_service.fail_order(order.id, "Duplicate order", refund=False)
        assert credit_service.get_balance(order.user_id) == 500

    def test_failed_order_cannot_be_fulfilled(self, order):
        order_service.fail_order(order.id, "Bad search")
        with pytest.raises(ValidationError):
            order_service.fulfill_order(order.id, "https://files.example.com/leads.csv")

    def test_completed_order_cannot_fail(self, order):
        order_service.fulfill_order(order.id, "https://files.example.com/leads.csv", delivery_type="csv_file")
        with pytest.raises(ValidationError):
            order_service.fail_order(order.id, "too late")
        assert credit_service.get_balance(order.user_id) == 500


class TestOrderQueries:

    def test_user_orders_newest_first(self, make_user):
        user = make_user(credits=1000)
        first = order_service.create_order(user.id, SEARCH_URL, 100)
        second = order_service.create_order(user.id, SEARCH_URL, 200)

        assert [o.id for o in order_service.get_user_orders(user.id)] == [second.id, first.id]

    def test_get_order_scoped_to_owner(self, make_user):
        owner = make_user(credits=1000)
        other = make_user(credits=1000)
        order = order_service.create_order(owner.id, SEARCH_URL, 100)

        assert order_service.get_order_by_id(order.id, user_id=owner.id).id == order.id
        with pytest.raises(NotFoundError):
            order_service.get_order_by_id(order.id, user_id=other.id)

    def test_all_orders_filtered_by_status(self, make_user):
        user = make_user(credits=1000)
        pending = order_service.create_order(user.id, SEARCH_URL, 100)
        started = order_service.create_order(user.id, SEARCH_URL, 100)
        order_service.start_processing(started.id, "ops")

        assert len(order_service.get_all_orders()) == 2
        assert [o.id for o in order_service.get_all_orders(OrderStatus.PENDING)] == [pending.id]


class TestRacingTransitions:

    @pytest.fixture
    def order(self, make_user):
        user = make_user(credits=1000)
        return order_service.create_order(user.id, SEARCH_URL, 500)

    def test_fulfill_racing_a_refunding_fail_is_rejected(self, order, monkeypatch):
        refunding = threading.Event()
        original = credit_service.add_credits

        def slow_refund(*args, **kwargs):
            refunding.set()
            time.sleep(0.5)
            return original(*args, **kwargs)

        monkeypatch.setattr(credit_service, "add_credits", slow_refund)
        rejected = []

        def fulfill():
            try:
                order_service.fulfill_order(order.id, "https://files.example.com/leads.csv")
            except ValidationError as e:
                rejected.append(e)

        failer = threading.Thread(target=order_service.fail_order, args=(order.id, "Search returned no results"))
        failer.start()
        assert refunding.wait(timeout=5)
        fulfiller = threading.Thread(target=fulfill)
        fulfiller.start()
        failer.join()
        fulfiller.join()

        assert len(rejected) == 1
        assert order_service.get_order_by_id(order.id).status == OrderStatus.FAILED
        assert credit_service.get_balance(order.user_id) == 1000

    def test_start_twice_only_first_claims(self, order):
        order_service.start_processing(order.id, "ops@example.com")

        with pytest.raises(ValidationError):
            order_service.start_processing(order.id, "other@example.com")

        assert order_service.get_order_by_id(order.id).assigned_to == "ops@example.com"
