"""Domain errors raised by the service layer.

The API layer translates these into HTTP responses (see ``quickleads.api.main``).
"""


class QuickLeadsError(Exception):
    """Base class for all domain errors."""


class ValidationError(QuickLeadsError, ValueError):
    """Missing or malformed input."""


class InsufficientCreditsError(QuickLeadsError):
    """Raised when user has insufficient credits."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits: required {required}, available {available}")


class NotFoundError(QuickLeadsError):
    """Unknown order, user, purchase or token reference."""


class UnauthorizedError(QuickLeadsError):
    """Missing or invalid credentials."""


class ForbiddenError(UnauthorizedError):
    """Authenticated, but the role does not grant the capability."""


class UpstreamError(QuickLeadsError):
    """Payment or email provider failure."""
