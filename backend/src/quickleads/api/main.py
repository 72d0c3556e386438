"""Main FastAPI application for the QuickLeads API."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from quickleads import __version__
from quickleads.affiliate.service import affiliate_service
from quickleads.api.rate_limit import REFERRAL_LIMIT, limiter
from quickleads.api.v1.admin import router as admin_router
from quickleads.api.v1.affiliate import router as affiliate_router
from quickleads.api.v1.auth import REFERRAL_COOKIE, router as auth_router
from quickleads.api.v1.credits import router as credits_router
from quickleads.api.v1.orders import router as orders_router
from quickleads.api.v1.team import router as team_router
from quickleads.api.v1.webhooks import router as webhooks_router
from quickleads.email.dispatcher import notifier
from quickleads.errors import (
    ForbiddenError,
    InsufficientCreditsError,
    NotFoundError,
    QuickLeadsError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from quickleads.logging_config import configure_logging, get_logger
from quickleads.settings import settings
from quickleads.storage.db import db

logger = get_logger(__name__)

# Most specific first: ForbiddenError subclasses UnauthorizedError
_ERROR_STATUS: list[tuple[type[QuickLeadsError], int]] = [
    (InsufficientCreditsError, status.HTTP_402_PAYMENT_REQUIRED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
]


def status_for(exc: QuickLeadsError) -> int:
    for error_cls, code in _ERROR_STATUS:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), "
            "camera=(), "
            "geolocation=(), "
            "microphone=(), "
            "usb=()"
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("app_starting", env=settings.env)

    db.create_tables()

    yield

    # Let in-flight notifications finish
    await notifier.drain()
    logger.info("app_shutting_down")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI app
    """
    configure_logging()

    is_production = settings.env == "production"

    app = FastAPI(
        title="QuickLeads API",
        description="Lead export storefront: credits, orders and affiliates",
        version=__version__,
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
        openapi_url=None if is_production else "/api/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(SecurityHeadersMiddleware)

    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]

    if is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked", message="Wildcard CORS not allowed in production")
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=3600,
    )

    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": "Too many requests. Please try again later."},
        )

    @app.exception_handler(QuickLeadsError)
    async def domain_error_handler(request: Request, exc: QuickLeadsError):
        code = status_for(exc)
        content = {"detail": str(exc)}
        if isinstance(exc, InsufficientCreditsError):
            content.update(required=exc.required, available=exc.available)
        headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
        if code >= 500:
            logger.error("request_failed", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=code, content=content, headers=headers)

    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(credits_router, prefix="/api/v1")
    app.include_router(orders_router, prefix="/api/v1")
    app.include_router(affiliate_router, prefix="/api/v1")
    app.include_router(team_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")
    app.include_router(webhooks_router, prefix="/api/v1")

    @app.get("/ref/{code}")
    @limiter.limit(REFERRAL_LIMIT)
    async def referral_redirect(request: Request, code: str):
        """Track a referral link visit and remember the code for registration."""
        click = affiliate_service.track_click(
            code,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            referrer_url=request.headers.get("referer"),
        )
        response = RedirectResponse(
            url=f"{settings.base_url}/register?ref={click.affiliate_code}",
            status_code=status.HTTP_302_FOUND,
        )
        response.set_cookie(
            REFERRAL_COOKIE,
            click.affiliate_code,
            max_age=settings.referral_cookie_days * 24 * 3600,
            httponly=True,
            samesite="lax",
            secure=is_production,
        )
        return response

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "version": __version__,
            "env": settings.env,
        }

    @app.get("/")
    async def root():
        return {
            "name": "QuickLeads API",
            "version": __version__,
            "docs": "/api/docs",
        }

    return app


# Create app instance
app = create_app()
