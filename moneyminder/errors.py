"""
Error Taxonomy

Every failure the services can raise is a subclass of MoneyMinderError and
carries the HTTP status it maps to. The API layer converts them to a
``{"error": message}`` body; nothing below the API knows about HTTP.

    MoneyMinderError (500)
    ├── ValidationError (400)
    ├── AuthError (401)
    ├── NotFoundError (404)
    ├── ConflictError (409)
    ├── StoreError (500)
    └── AdvisorUnavailableError (503)
"""


class MoneyMinderError(Exception):
    """Base exception for all domain failures."""

    status_code: int = 500

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or "Request failed"
        super().__init__(self.message)


# =============================================================================
# 400 - malformed or missing input
# =============================================================================

class ValidationError(MoneyMinderError):
    """Invalid input."""
    status_code = 400


class TwoFactorNotConfiguredError(ValidationError):
    """Two-factor authentication has not been set up."""


# =============================================================================
# 401 - bad credentials
# =============================================================================

class AuthError(MoneyMinderError):
    """Unauthorized."""
    status_code = 401


class InvalidPasswordError(AuthError):
    """Invalid password."""


class EmailNotVerifiedError(AuthError):
    """Please verify your email address before logging in."""


class InvalidCodeError(AuthError):
    """Invalid verification code."""


class InvalidTokenError(AuthError):
    """Invalid token."""


class ExpiredTokenError(InvalidTokenError):
    """Token has expired."""


# =============================================================================
# 404 - unknown entity
# =============================================================================

class NotFoundError(MoneyMinderError):
    """Not found."""
    status_code = 404


class UserNotFoundError(NotFoundError):
    """User not found."""


class GoalNotFoundError(NotFoundError):
    """Savings goal not found."""


class InvalidVerificationTokenError(NotFoundError):
    """Invalid verification token."""


class VerificationTokenExpiredError(InvalidVerificationTokenError):
    """Verification token has expired."""


# =============================================================================
# 409 / 500 / 503
# =============================================================================

class ConflictError(MoneyMinderError):
    """Conflict."""
    status_code = 409


class EmailTakenError(ConflictError):
    """User with this email already exists."""


class StoreError(MoneyMinderError):
    """Storage failure."""
    status_code = 500


class AdvisorUnavailableError(MoneyMinderError):
    """The financial advisor is not configured."""
    status_code = 503
