"""
Tests for credit purchases and Stripe checkout handling.
"""
from decimal import Decimal
import threading
import time
from types import SimpleNamespace

import pytest
import stripe
from sqlalchemy import func, select

from quickleads.affiliate.service import affiliate_service
from quickleads.auth.credits import credit_service
from quickleads.email.dispatcher import NotificationKind
from quickleads.errors import NotFoundError, UpstreamError, ValidationError
from quickleads.payments import stripe_service
from quickleads.payments.purchases import purchase_service
from quickleads.storage.db import db
from quickleads.storage.models import AffiliateCommission, CreditPurchase, PurchaseStatus


def _count(model) -> int:
    with db.session() as session:
        return session.scalar(select(func.count(model.id)))


def _purchase(reference: str) -> CreditPurchase:
    with db.session() as session:
        return session.scalar(select(CreditPurchase).where(CreditPurchase.payment_reference == reference))


class TestCompletePurchase:

    def test_credits_commission_and_confirmation(self, make_user, sent):
        affiliate = make_user()
        code = affiliate_service.generate_affiliate_code(affiliate.id)
        buyer = make_user(referral_code=code, first_name="Kim")

        purchase = purchase_service.complete_purchase("cs_test_1", buyer.id, 10000, Decimal("19.00"), "10000")

        assert purchase.status == PurchaseStatus.COMPLETED
        assert purchase.completed_at is not None
        assert credit_service.get_balance(buyer.id) == 10000
        with db.session() as session:
            commission = session.scalar(select(AffiliateCommission))
        assert commission.commission_amount == Decimal("2.85")

        kind, context = sent[-1]
        assert kind == NotificationKind.PURCHASE_CONFIRMATION
        assert context == {
            "to_email": buyer.email,
            "first_name": "Kim",
            "credits_purchased": 10000,
            "amount_paid": 19.0,
        }

    def test_replay_is_a_no_op(self, make_user, sent):
        affiliate = make_user()
        code = affiliate_service.generate_affiliate_code(affiliate.id)
        buyer = make_user(referral_code=code)

        first = purchase_service.complete_purchase("cs_test_1", buyer.id, 10000, Decimal("19.00"))
        second = purchase_service.complete_purchase("cs_test_1", buyer.id, 10000, Decimal("19.00"))

        assert first is not None
        assert second is None
        assert credit_service.get_balance(buyer.id) == 10000
        assert _count(CreditPurchase) == 1
        assert _count(AffiliateCommission) == 1
        assert len(sent) == 1

    def test_completes_existing_pending_row(self, make_user):
        buyer = make_user()
        purchase_service.create_pending(buyer.id, "cs_pending", 5000, Decimal("10.00"), "5000")

        purchase_service.complete_purchase("cs_pending", buyer.id, 5000, Decimal("10.00"), "5000")

        assert _count(CreditPurchase) == 1
        assert _purchase("cs_pending").status == PurchaseStatus.COMPLETED
        assert credit_service.get_balance(buyer.id) == 5000

    def test_unknown_user_writes_nothing(self):
        with pytest.raises(NotFoundError):
            purchase_service.complete_purchase("cs_x", 404, 5000, Decimal("10.00"))
        assert _count(CreditPurchase) == 0

    def test_requires_reference(self, make_user):
        buyer = make_user()
        with pytest.raises(ValidationError):
            purchase_service.complete_purchase("", buyer.id, 5000, Decimal("10.00"))

    def test_history_newest_first(self, make_user):
        buyer = make_user()
        purchase_service.complete_purchase("cs_a", buyer.id, 5000, Decimal("10.00"))
        purchase_service.complete_purchase("cs_b", buyer.id, 10000, Decimal("19.00"))

        history = credit_service.get_purchase_history(buyer.id)

        assert [p.payment_reference for p in history] == ["cs_b", "cs_a"]


    def test_reference_owned_by_another_user_is_rejected(self, make_user):
        owner = make_user()
        other = make_user()
        purchase_service.create_pending(owner.id, "cs_owned", 5000, Decimal("10.00"), "5000")

        with pytest.raises(ValidationError):
            purchase_service.complete_purchase("cs_owned", other.id, 5000, Decimal("10.00"))

        assert _purchase("cs_owned").status == PurchaseStatus.PENDING
        assert credit_service.get_balance(owner.id) == 0
        assert credit_service.get_balance(other.id) == 0

    def test_overlapping_deliveries_grant_credits_once(self, make_user, monkeypatch):
        buyer = make_user()
        purchase_service.create_pending(buyer.id, "cs_race", 5000, Decimal("10.00"), "5000")
        granting = threading.Event()
        original = credit_service.add_credits

        def slow_grant(*args, **kwargs):
            granting.set()
            time.sleep(0.5)
            return original(*args, **kwargs)

        monkeypatch.setattr(credit_service, "add_credits", slow_grant)
        results = []

        def deliver():
            results.append(
                purchase_service.complete_purchase("cs_race", buyer.id, 5000, Decimal("10.00"), "5000")
            )

        first = threading.Thread(target=deliver)
        first.start()
        assert granting.wait(timeout=5)
        second = threading.Thread(target=deliver)
        second.start()
        first.join()
        second.join()

        assert sorted(result is None for result in results) == [False, True]
        assert credit_service.get_balance(buyer.id) == 5000
        assert _purchase("cs_race").status == PurchaseStatus.COMPLETED


class TestFailPurchase:

    def test_pending_becomes_failed(self, make_user):
        buyer = make_user()
        purchase_service.create_pending(buyer.id, "cs_exp", 5000, Decimal("10.00"))

        assert purchase_service.fail_purchase("cs_exp").status == PurchaseStatus.FAILED
        assert credit_service.get_balance(buyer.id) == 0

    def test_completed_is_left_alone(self, make_user):
        buyer = make_user()
        purchase_service.complete_purchase("cs_done", buyer.id, 5000, Decimal("10.00"))

        assert purchase_service.fail_purchase("cs_done") is None
        assert _purchase("cs_done").status == PurchaseStatus.COMPLETED

    def test_unknown_reference(self):
        assert purchase_service.fail_purchase("cs_missing") is None


class TestCheckoutSession:

    def test_creates_session_and_pending_purchase(self, make_user, monkeypatch):
        buyer = make_user()
        captured = {}

        def fake_create(**kwargs):
            captured.update(kwargs)
            return SimpleNamespace(id="cs_test_new", url="https://checkout.stripe.test/cs_test_new")

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

        result = stripe_service.create_checkout_session(
            buyer.id, buyer.email, "50000", "https://quickleads.test/ok", "https://quickleads.test/cancel"
        )

        assert result == {"session_id": "cs_test_new", "url": "https://checkout.stripe.test/cs_test_new"}
        assert captured["line_items"][0]["price_data"]["unit_amount"] == 9000
        assert captured["metadata"] == {"user_id": str(buyer.id), "package_id": "50000", "credits": "50000"}

        pending = _purchase("cs_test_new")
        assert pending.status == PurchaseStatus.PENDING
        assert pending.amount == Decimal("90.00")

    def test_unknown_package(self, make_user):
        buyer = make_user()
        with pytest.raises(ValidationError):
            stripe_service.create_checkout_session(buyer.id, buyer.email, "7", "https://a.test", "https://b.test")

    def test_stripe_failure_surfaces(self, make_user, monkeypatch):
        buyer = make_user()

        def boom(**kwargs):
            raise stripe.StripeError("card network down")

        monkeypatch.setattr(stripe.checkout.Session, "create", boom)

        with pytest.raises(UpstreamError):
            stripe_service.create_checkout_session(
                buyer.id, buyer.email, "5000", "https://a.test", "https://b.test"
            )
        assert _count(CreditPurchase) == 0

    def test_unconfigured_stripe(self, make_user, monkeypatch):
        buyer = make_user()
        monkeypatch.setattr(stripe_service.settings, "stripe_secret_key", None)

        with pytest.raises(UpstreamError):
            stripe_service.create_checkout_session(
                buyer.id, buyer.email, "5000", "https://a.test", "https://b.test"
            )


class TestCheckoutCompleted:

    def _session(self, user_id, **overrides):
        session = {
            "id": "cs_hook",
            "amount_total": 1900,
            "currency": "usd",
            "payment_status": "paid",
            "metadata": {"user_id": str(user_id), "package_id": "10000", "credits": "10000"},
        }
        session.update(overrides)
        return session

    def test_amount_comes_from_stripe_total(self, make_user):
        buyer = make_user()

        purchase = stripe_service.handle_checkout_completed(self._session(buyer.id))

        assert purchase.amount == Decimal("19.00")
        assert credit_service.get_balance(buyer.id) == 10000

    def test_missing_metadata_is_ignored(self, make_user):
        buyer = make_user()
        assert stripe_service.handle_checkout_completed(self._session(buyer.id, metadata={})) is None
        assert credit_service.get_balance(buyer.id) == 0

    def test_unpaid_session_waits(self, make_user):
        buyer = make_user()
        result = stripe_service.handle_checkout_completed(self._session(buyer.id, payment_status="unpaid"))
        assert result is None
        assert credit_service.get_balance(buyer.id) == 0
