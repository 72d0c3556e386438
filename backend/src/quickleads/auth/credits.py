"""Credit ledger for QuickLeads."""

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from quickleads.catalog import CreditCatalog, load_catalog
from quickleads.errors import InsufficientCreditsError, NotFoundError, ValidationError
from quickleads.logging_config import get_logger
from quickleads.storage.db import db
from quickleads.storage.models import CreditPurchase, UserAccount

logger = get_logger(__name__)


class CreditService:
    """Service for managing user credit balances.

    Operations:
    - Add credits (purchases, team grants, refunds)
    - Deduct credits (orders)
    - Balance and purchase history lookups
    """

    def __init__(self, catalog: CreditCatalog | None = None):
        """Initialize credit service.

        Args:
            catalog: Credit package catalog (defaults to the process catalog)
        """
        self.catalog = catalog or load_catalog()
        self.logger = get_logger(__name__)

    def get_balance(self, user_id: int) -> int:
        """Get user's credit balance.

        Raises:
            NotFoundError: If the user does not exist
        """
        with db.session() as session:
            balance = session.scalar(select(UserAccount.credits).where(UserAccount.id == user_id))
            if balance is None:
                raise NotFoundError(f"User {user_id} not found")
            return balance

    def add_credits(self, user_id: int, amount: int, session: Session | None = None) -> int:
        """Add credits to user account.

        Args:
            user_id: User ID
            amount: Amount to add (positive)
            session: Optional open session to join

        Returns:
            New balance
        """
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        with db.join(session) as s:
            result = s.execute(
                update(UserAccount)
                .where(UserAccount.id == user_id)
                .values(credits=UserAccount.credits + amount, updated_at=datetime.utcnow())
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount == 0:
                raise NotFoundError(f"User {user_id} not found")

            new_balance = s.scalar(select(UserAccount.credits).where(UserAccount.id == user_id))

        self.logger.info("credits_added", user_id=user_id, amount=amount, new_balance=new_balance)
        return new_balance

    def deduct_credits(self, user_id: int, amount: int, session: Session | None = None) -> int:
        """Deduct credits from user account.

        The balance check and the decrement are one conditional UPDATE, so
        concurrent deductions can never drive the balance below zero.

        Args:
            user_id: User ID
            amount: Amount to deduct (positive)
            session: Optional open session to join

        Returns:
            New balance

        Raises:
            InsufficientCreditsError: If not enough credits
        """
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        with db.join(session) as s:
            result = s.execute(
                update(UserAccount)
                .where(UserAccount.id == user_id, UserAccount.credits >= amount)
                .values(credits=UserAccount.credits - amount, updated_at=datetime.utcnow())
                .execution_options(synchronize_session="fetch")
            )
            current = s.scalar(select(UserAccount.credits).where(UserAccount.id == user_id))

            if result.rowcount == 0:
                if current is None:
                    raise NotFoundError(f"User {user_id} not found")
                raise InsufficientCreditsError(amount, current)

        self.logger.info("credits_deducted", user_id=user_id, amount=amount, new_balance=current)
        return current

    def assign_credits_by_email(self, email: str, amount: int) -> UserAccount:
        """Grant free credits to the account registered under ``email``.

        Returns:
            The updated user
        """
        if not email:
            raise ValidationError("Email is required")

        with db.session() as session:
            user = session.scalar(select(UserAccount).where(UserAccount.email == email.strip().lower()))
            if not user:
                raise NotFoundError("User not found with this email address")

            self.add_credits(user.id, amount, session=session)
            session.refresh(user)

            self.logger.info("credits_assigned", user_id=user.id, amount=amount, new_balance=user.credits)
            return user

    def get_purchase_history(self, user_id: int) -> list[CreditPurchase]:
        """Get user's credit purchases, newest first."""
        with db.session() as session:
            return list(
                session.scalars(
                    select(CreditPurchase)
                    .where(CreditPurchase.user_id == user_id)
                    .order_by(CreditPurchase.created_at.desc(), CreditPurchase.id.desc())
                )
            )

    def get_packages(self) -> list[dict[str, Any]]:
        """Get available credit packages."""
        return [package.to_dict() for package in self.catalog]


# Singleton instance
credit_service = CreditService()
