"""Authentication API v1 endpoints."""

from fastapi import APIRouter, Depends, Request, status

from quickleads.api.rate_limit import (
    EMAIL_LIMIT,
    LOGIN_LIMIT,
    PASSWORD_RESET_LIMIT,
    REGISTER_LIMIT,
    limiter,
)
from quickleads.auth.local import JWT_EXPIRE_HOURS, RESET_EXPIRE_MINUTES, auth_service
from quickleads.auth.middleware import require_auth
from quickleads.auth.models import (
    EmailRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordConfirm,
    TokenResponse,
    User,
    VerifyEmailRequest,
)
from quickleads.email.dispatcher import NotificationKind, notifier
from quickleads.errors import UnauthorizedError, ValidationError
from quickleads.logging_config import get_logger
from quickleads.storage.models import UserAccount

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

REFERRAL_COOKIE = "ref_code"


def _token_response(user: UserAccount) -> TokenResponse:
    return TokenResponse(
        access_token=auth_service.create_access_token(user),
        token_type="bearer",
        expires_in=JWT_EXPIRE_HOURS * 3600,
        user=User.model_validate(user),
    )


def _send_verification(user: UserAccount) -> None:
    notifier.dispatch(
        NotificationKind.VERIFICATION,
        to_email=user.email,
        first_name=user.first_name,
        verification_token=auth_service.generate_verification_token(user.id),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTER_LIMIT)
async def register(request: Request, body: RegisterRequest):
    """Register a new customer account.

    The referral code comes from the body or, failing that, from the
    cookie set by the /ref/{code} redirect.
    """
    referral_code = body.referral_code or request.cookies.get(REFERRAL_COOKIE)

    user = auth_service.create_user(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        referral_code=referral_code,
    )

    logger.info("user_registered", user_id=user.id, referred_by=user.referred_by)

    _send_verification(user)
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
@limiter.limit(LOGIN_LIMIT)
async def login(request: Request, body: LoginRequest):
    """Login with email and password."""
    user = auth_service.authenticate(body.email, body.password)

    if not user:
        logger.warning(
            "login_failed",
            email=body.email,
            ip=request.client.host if request.client else "unknown",
        )
        raise UnauthorizedError("Invalid email or password")

    logger.info("user_logged_in", user_id=user.id)
    return _token_response(user)


@router.get("/me", response_model=User)
async def get_current_user_info(user: UserAccount = Depends(require_auth)):
    """Get current user information."""
    return user


@router.post("/verify-email")
async def verify_email(body: VerifyEmailRequest):
    if not auth_service.verify_email(body.token):
        raise ValidationError("Invalid or expired verification token")
    return {"verified": True}


@router.post("/resend-verification")
@limiter.limit(EMAIL_LIMIT)
async def resend_verification(request: Request, user: UserAccount = Depends(require_auth)):
    if user.email_verified:
        return {"message": "Email already verified"}

    _send_verification(user)
    return {"message": "Verification email sent"}


@router.post("/forgot-password")
@limiter.limit(EMAIL_LIMIT)
async def forgot_password(request: Request, body: EmailRequest):
    """Request a password reset email.

    Always answers the same way so account existence is not revealed.
    """
    result = auth_service.generate_reset_token(body.email)
    if result:
        user, token = result
        notifier.dispatch(
            NotificationKind.PASSWORD_RESET,
            to_email=user.email,
            first_name=user.first_name,
            reset_token=token,
            expiry_minutes=RESET_EXPIRE_MINUTES,
        )

    return {"message": "If an account exists, a reset link has been sent"}


@router.post("/reset-password")
@limiter.limit(PASSWORD_RESET_LIMIT)
async def reset_password(request: Request, body: ResetPasswordConfirm):
    if not auth_service.reset_password(body.token, body.new_password):
        raise ValidationError("Invalid or expired reset token")
    return {"message": "Password updated"}
