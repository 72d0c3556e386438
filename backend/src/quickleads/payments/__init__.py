"""Payments: Stripe Checkout and credit purchase records."""

from quickleads.payments.purchases import PurchaseService, purchase_service

__all__ = ["PurchaseService", "purchase_service"]
