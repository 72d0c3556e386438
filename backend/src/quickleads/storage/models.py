"""Database models for the storefront - unified model set."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Role(str, Enum):
    """Account roles, ordered by capability."""
    CUSTOMER = "customer"  # Buys credits and places orders
    TEAM = "team"          # Fulfills orders, assigns credits
    ADMIN = "admin"        # Team capabilities plus affiliate payouts

    @property
    def level(self) -> int:
        return _ROLE_LEVELS[self]

    def grants(self, required: "Role") -> bool:
        return self.level >= required.level


_ROLE_LEVELS = {Role.CUSTOMER: 0, Role.TEAM: 1, Role.ADMIN: 2}


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DeliveryType(str, Enum):
    CSV_FILE = "csv_file"
    GOOGLE_SHEETS = "google_sheets"


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CommissionStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


def _enum(enum_cls: type[Enum]) -> SQLEnum:
    # Store enum values ("pending") rather than member names ("PENDING")
    return SQLEnum(enum_cls, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20)


class UserAccount(Base):
    """Customer, team member or admin account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    role: Mapped[Role] = mapped_column(_enum(Role), default=Role.CUSTOMER, nullable=False)

    # Credits
    credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Affiliate program
    affiliate_code: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True, index=True)
    referred_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True, index=True
    )
    paypal_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Payments
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    orders: Mapped[list["Order"]] = relationship("Order", back_populates="user")
    purchases: Mapped[list["CreditPurchase"]] = relationship("CreditPurchase", back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    def __repr__(self) -> str:
        return f"<UserAccount(id={self.id}, email={self.email}, role={self.role})>"


class CreditPurchase(Base):
    """One payment event, keyed by the external payment reference."""

    __tablename__ = "credit_purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    package_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="usd", nullable=False)

    # Stripe checkout session id; idempotency key for payment completion
    payment_reference: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    status: Mapped[PurchaseStatus] = mapped_column(
        _enum(PurchaseStatus), default=PurchaseStatus.PENDING, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    user: Mapped["UserAccount"] = relationship("UserAccount", back_populates="purchases")

    def __repr__(self) -> str:
        return f"<CreditPurchase(id={self.id}, ref={self.payment_reference}, status={self.status})>"


class Order(Base):
    """A request to turn credits into a delivered lead export."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    search_url: Mapped[str] = mapped_column(Text, nullable=False)
    credits_used: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_leads: Mapped[int | None] = mapped_column(Integer, nullable=True)
    delivery_email: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        _enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True
    )

    # Fulfillment
    delivery_type: Mapped[DeliveryType | None] = mapped_column(_enum(DeliveryType), nullable=True)
    delivery_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    user: Mapped["UserAccount"] = relationship("UserAccount", back_populates="orders")

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, user={self.user_id}, status={self.status})>"


class AffiliateClick(Base):
    """Append-only referral link visit."""

    __tablename__ = "affiliate_clicks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Not a foreign key: clicks on unknown codes are recorded too
    affiliate_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class AffiliateCommission(Base):
    """Commission owed to an affiliate for one referred purchase."""

    __tablename__ = "affiliate_commissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    affiliate_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    referred_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    purchase_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("credit_purchases.id"), unique=True, nullable=False
    )

    sale_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), default=Decimal("0.1500"), nullable=False)

    status: Mapped[CommissionStatus] = mapped_column(
        _enum(CommissionStatus), default=CommissionStatus.PENDING, nullable=False, index=True
    )
    payment_month: Mapped[str | None] = mapped_column(String(7), nullable=True)  # YYYY-MM
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    affiliate: Mapped["UserAccount"] = relationship("UserAccount", foreign_keys=[affiliate_user_id])
    referred: Mapped["UserAccount"] = relationship("UserAccount", foreign_keys=[referred_user_id])
    purchase: Mapped["CreditPurchase"] = relationship("CreditPurchase")

    def __repr__(self) -> str:
        return f"<AffiliateCommission(id={self.id}, affiliate={self.affiliate_user_id}, amount={self.commission_amount})>"
