"""Local authentication service (email/password)."""

from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select

from quickleads.errors import NotFoundError, ValidationError
from quickleads.logging_config import get_logger
from quickleads.settings import settings
from quickleads.storage.db import db
from quickleads.storage.models import Role, UserAccount

logger = get_logger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# JWT settings
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_HOURS = 2
VERIFICATION_EXPIRE_HOURS = 24
RESET_EXPIRE_MINUTES = 30

TOKEN_EMAIL_VERIFICATION = "email_verification"
TOKEN_PASSWORD_RESET = "password_reset"


class LocalAuthService:
    """Authentication service for local (email/password) users."""

    def __init__(self, secret_key: str | None = None):
        """Initialize auth service.

        Args:
            secret_key: JWT signing key (defaults to settings)
        """
        self.secret_key = secret_key or settings.jwt_secret_key
        self.logger = get_logger(__name__)

    # ==================== PASSWORD ====================

    def _truncate_password(self, password: str) -> str:
        """Truncate password to 72 bytes (bcrypt limit)."""
        return password.encode("utf-8")[:72].decode("utf-8", errors="ignore")

    def hash_password(self, password: str) -> str:
        return pwd_context.hash(self._truncate_password(password))

    def verify_password(self, password: str, hashed: str) -> bool:
        return pwd_context.verify(self._truncate_password(password), hashed)

    # ==================== USER MANAGEMENT ====================

    def create_user(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str | None = None,
        referral_code: str | None = None,
    ) -> UserAccount:
        """Create a new local user.

        Args:
            email: User email
            password: Plain password
            first_name: First name
            last_name: Optional last name
            referral_code: Pending affiliate code; unknown codes are ignored

        Returns:
            Created user account

        Raises:
            ValidationError: If email already exists
        """
        email = email.strip().lower()
        if not first_name or not first_name.strip():
            raise ValidationError("First name is required")

        with db.session() as session:
            existing = session.scalar(select(UserAccount.id).where(UserAccount.email == email))
            if existing:
                raise ValidationError("Email already registered")

            referred_by = None
            if referral_code:
                referred_by = session.scalar(
                    select(UserAccount.id).where(
                        UserAccount.affiliate_code == referral_code.strip().upper()
                    )
                )
                if referred_by is None:
                    self.logger.info("referral_code_unknown", referral_code=referral_code)

            user = UserAccount(
                email=email,
                password_hash=self.hash_password(password),
                first_name=first_name.strip(),
                last_name=last_name.strip() if last_name else None,
                role=Role.CUSTOMER,
                credits=0,
                referred_by=referred_by,
            )
            session.add(user)
            session.flush()

            self.logger.info("user_created", user_id=user.id, email=email, referred_by=referred_by)
            return user

    def authenticate(self, email: str, password: str) -> UserAccount | None:
        """Authenticate a user.

        Returns:
            User account if valid, None otherwise
        """
        with db.session() as session:
            user = session.scalar(
                select(UserAccount).where(
                    UserAccount.email == email.strip().lower(),
                    UserAccount.is_active.is_(True),
                )
            )
            if not user or not self.verify_password(password, user.password_hash):
                return None

            user.last_login_at = datetime.utcnow()

            self.logger.info("user_authenticated", user_id=user.id)
            return user

    def get_user_by_id(self, user_id: int) -> UserAccount | None:
        with db.session() as session:
            return session.scalar(
                select(UserAccount).where(UserAccount.id == user_id, UserAccount.is_active.is_(True))
            )

    def get_user_by_email(self, email: str) -> UserAccount | None:
        with db.session() as session:
            return session.scalar(select(UserAccount).where(UserAccount.email == email.strip().lower()))

    def grant_role(self, email: str, role: Role) -> UserAccount:
        """Change the role of the account registered under ``email``.

        Raises:
            NotFoundError: If no such user
        """
        with db.session() as session:
            user = session.scalar(select(UserAccount).where(UserAccount.email == email.strip().lower()))
            if not user:
                raise NotFoundError(f"User {email} not found")
            user.role = role

        self.logger.info("role_granted", user_id=user.id, role=role.value)
        return user

    # ==================== JWT TOKENS ====================

    def _encode(self, payload: dict[str, Any]) -> str:
        return jwt.encode(payload, self.secret_key, algorithm=JWT_ALGORITHM)

    def create_access_token(
        self,
        user: UserAccount,
        expires_delta: timedelta | None = None,
    ) -> str:
        """Create JWT access token.

        Args:
            user: User account
            expires_delta: Optional expiration time

        Returns:
            JWT token string
        """
        if expires_delta is None:
            expires_delta = timedelta(hours=JWT_EXPIRE_HOURS)

        now = datetime.utcnow()
        return self._encode({
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
            "exp": now + expires_delta,
            "iat": now,
        })

    def verify_token(self, token: str) -> dict[str, Any] | None:
        """Verify and decode JWT token.

        Returns:
            Token payload or None if invalid
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[JWT_ALGORITHM])
        except JWTError as e:
            self.logger.debug("token_verification_failed", error=str(e))
            return None

    def get_user_from_token(self, token: str) -> UserAccount | None:
        payload = self.verify_token(token)
        # Purpose tokens (verification, reset) are not access tokens
        if not payload or payload.get("type") or not payload.get("sub"):
            return None
        return self.get_user_by_id(int(payload["sub"]))

    def _user_id_for(self, token: str, token_type: str) -> int | None:
        payload = self.verify_token(token)
        if not payload or payload.get("type") != token_type or not payload.get("sub"):
            return None
        return int(payload["sub"])

    # ==================== EMAIL VERIFICATION ====================

    def generate_verification_token(self, user_id: int) -> str:
        return self._encode({
            "sub": str(user_id),
            "type": TOKEN_EMAIL_VERIFICATION,
            "exp": datetime.utcnow() + timedelta(hours=VERIFICATION_EXPIRE_HOURS),
        })

    def verify_email(self, token: str) -> bool:
        """Verify email with token.

        Returns:
            True if verified successfully
        """
        user_id = self._user_id_for(token, TOKEN_EMAIL_VERIFICATION)
        if user_id is None:
            return False

        with db.session() as session:
            user = session.get(UserAccount, user_id)
            if not user:
                return False
            user.email_verified = True

        self.logger.info("email_verified", user_id=user_id)
        return True

    # ==================== PASSWORD RESET ====================

    def generate_reset_token(self, email: str) -> tuple[UserAccount, str] | None:
        """Generate password reset token.

        Returns:
            (user, token) or None if user not found
        """
        user = self.get_user_by_email(email)
        if not user or not user.is_active:
            return None

        token = self._encode({
            "sub": str(user.id),
            "type": TOKEN_PASSWORD_RESET,
            "exp": datetime.utcnow() + timedelta(minutes=RESET_EXPIRE_MINUTES),
        })
        return user, token

    def reset_password(self, token: str, new_password: str) -> bool:
        """Reset password with token.

        Returns:
            True if reset successfully
        """
        user_id = self._user_id_for(token, TOKEN_PASSWORD_RESET)
        if user_id is None:
            return False

        with db.session() as session:
            user = session.get(UserAccount, user_id)
            if not user:
                return False
            user.password_hash = self.hash_password(new_password)

        self.logger.info("password_reset", user_id=user_id)
        return True


# Singleton instance
auth_service = LocalAuthService()
