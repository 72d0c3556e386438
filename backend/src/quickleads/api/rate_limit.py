"""Rate limiting for the QuickLeads API.

Limits are keyed on the client address. Routers reference the named limits
below so each surface is tuned in one place.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from quickleads.settings import settings

# Credential guessing and email-sending endpoints
LOGIN_LIMIT = "10/minute"
REGISTER_LIMIT = "5/minute"
EMAIL_LIMIT = "3/minute"
PASSWORD_RESET_LIMIT = "5/minute"

# Endpoints that spend credits or open a Stripe session
ORDER_LIMIT = "20/minute"
CHECKOUT_LIMIT = "10/minute"

# Public referral links get crawled and shared widely
REFERRAL_LIMIT = "60/minute"

# Single shared limiter instance - disabled outside production
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200/minute"],
    storage_uri="memory://",
    enabled=settings.env == "production",
)
