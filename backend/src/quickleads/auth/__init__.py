"""Authentication, roles and the credit ledger."""

from quickleads.auth.credits import CreditService, credit_service
from quickleads.auth.local import LocalAuthService, auth_service
from quickleads.auth.middleware import get_current_user, require_auth, require_role

__all__ = [
    "CreditService",
    "LocalAuthService",
    "auth_service",
    "credit_service",
    "get_current_user",
    "require_auth",
    "require_role",
]
