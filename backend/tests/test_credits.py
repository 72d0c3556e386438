"""
Tests for the credit catalog and ledger.
"""
from decimal import Decimal

import pytest

from quickleads.auth.credits import credit_service
from quickleads.catalog import load_catalog
from quickleads.errors import InsufficientCreditsError, NotFoundError, ValidationError
from quickleads.storage.db import db


class TestCatalog:
    """Static credit packages."""

    def test_packages_are_ordered_by_credits(self):
        credits = [p.credits for p in load_catalog().packages()]
        assert credits == [5_000, 10_000, 50_000, 100_000, 500_000, 1_000_000]

    def test_known_package_prices(self):
        package = load_catalog().get("10000")
        assert package.price == Decimal("19.00")
        assert package.price_cents == 1900
        assert package.price_per_thousand == Decimal("1.90")

    def test_unknown_package_is_rejected(self):
        with pytest.raises(ValidationError):
            load_catalog().get("42")

    def test_catalog_is_loaded_once(self):
        assert load_catalog() is load_catalog()

    def test_get_packages_for_clients(self):
        packages = credit_service.get_packages()
        assert packages[0] == {"id": "5000", "credits": 5000, "price": 10.0, "price_per_thousand": 2.0}


class TestCreditService:
    """Ledger add/deduct semantics."""

    def test_add_credits_returns_new_balance(self, make_user):
        user = make_user(credits=100)
        assert credit_service.add_credits(user.id, 50) == 150
        assert credit_service.get_balance(user.id) == 150

    @pytest.mark.parametrize("amount", [0, -5])
    def test_add_rejects_non_positive_amounts(self, make_user, amount):
        user = make_user(credits=100)
        with pytest.raises(ValidationError):
            credit_service.add_credits(user.id, amount)
        assert credit_service.get_balance(user.id) == 100

    def test_add_to_unknown_user(self):
        with pytest.raises(NotFoundError):
            credit_service.add_credits(999, 10)

    def test_deduct_reduces_balance(self, make_user):
        user = make_user(credits=5000)
        assert credit_service.deduct_credits(user.id, 1200) == 3800

    def test_deduct_exact_balance_reaches_zero(self, make_user):
        user = make_user(credits=5000)
        assert credit_service.deduct_credits(user.id, 5000) == 0

    def test_deduct_more_than_balance_changes_nothing(self, make_user):
        user = make_user(credits=5000)

        with pytest.raises(InsufficientCreditsError) as exc_info:
            credit_service.deduct_credits(user.id, 6000)

        assert exc_info.value.required == 6000
        assert exc_info.value.available == 5000
        assert credit_service.get_balance(user.id) == 5000

    def test_deduct_from_unknown_user(self):
        with pytest.raises(NotFoundError):
            credit_service.deduct_credits(999, 10)

    def test_deduct_joins_caller_transaction(self, make_user):
        user = make_user(credits=1000)

        with pytest.raises(RuntimeError):
            with db.session() as session:
                credit_service.deduct_credits(user.id, 400, session=session)
                raise RuntimeError("later step failed")

        assert credit_service.get_balance(user.id) == 1000

    def test_sequential_deductions_never_go_negative(self, make_user):
        user = make_user(credits=1000)
        credit_service.deduct_credits(user.id, 600)

        with pytest.raises(InsufficientCreditsError):
            credit_service.deduct_credits(user.id, 600)

        assert credit_service.get_balance(user.id) == 400

    def test_assign_credits_by_email(self, make_user):
        user = make_user(email="buyer@example.com", credits=10)

        updated = credit_service.assign_credits_by_email("  Buyer@Example.com ", 90)

        assert updated.id == user.id
        assert updated.credits == 100

    def test_assign_credits_to_unknown_email(self):
        with pytest.raises(NotFoundError):
            credit_service.assign_credits_by_email("nobody@example.com", 10)
