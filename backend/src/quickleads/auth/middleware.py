"""Authentication dependencies for FastAPI."""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from quickleads.auth.local import auth_service
from quickleads.errors import ForbiddenError, UnauthorizedError
from quickleads.logging_config import get_logger
from quickleads.storage.models import Role, UserAccount

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> UserAccount | None:
    """Get current authenticated user, or None if not authenticated."""
    if not credentials:
        return None

    user = auth_service.get_user_from_token(credentials.credentials)
    if user:
        request.state.user = user

    return user


def require_auth(user: UserAccount | None = Depends(get_current_user)) -> UserAccount:
    """Require authentication - raises 401 if not authenticated."""
    if not user:
        raise UnauthorizedError("Not authenticated")
    return user


def require_role(role: Role):
    """Build a dependency requiring at least ``role``.

    Usage:
        @router.get("/orders")
        async def list_orders(user: UserAccount = Depends(require_role(Role.TEAM))):
    """

    def checker(user: UserAccount = Depends(require_auth)) -> UserAccount:
        if not user.role.grants(role):
            logger.warning("access_denied", user_id=user.id, role=user.role.value, required=role.value)
            raise ForbiddenError(f"{role.value.capitalize()} access required")
        return user

    return checker


require_team = require_role(Role.TEAM)
require_admin = require_role(Role.ADMIN)
