"""Persistence layer: SQLAlchemy models and session management."""

from quickleads.storage.db import Database, db
from quickleads.storage.models import (
    AffiliateClick,
    AffiliateCommission,
    Base,
    CommissionStatus,
    CreditPurchase,
    DeliveryType,
    Order,
    OrderStatus,
    PurchaseStatus,
    Role,
    UserAccount,
)

__all__ = [
    "AffiliateClick",
    "AffiliateCommission",
    "Base",
    "CommissionStatus",
    "CreditPurchase",
    "Database",
    "DeliveryType",
    "Order",
    "OrderStatus",
    "PurchaseStatus",
    "Role",
    "UserAccount",
    "db",
]
