"""Domain errors raised by the auth, verification and order services.

Each error carries an HTTP status and a short machine code; app.error_handlers
renders them as {"detail": message, "code": code}. Messages are safe to show
to clients and never include internals.
"""


class MarketError(Exception):
    """Base class for every error the services raise on purpose."""

    status_code = 500
    code = "internal_error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MarketError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class ConflictError(MarketError):
    status_code = 400
    code = "conflict"
    default_message = "Already exists"


class AuthError(MarketError):
    status_code = 401
    code = "auth_error"
    default_message = "Authentication failed"


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    default_message = "Invalid credentials"


class OtpInvalidOrExpired(AuthError):
    code = "otp_invalid_or_expired"
    default_message = "Invalid or expired verification code"


class UserNotFound(AuthError):
    # Same wording as InvalidCredentials so login cannot be used to probe accounts
    code = "invalid_credentials"
    default_message = "Invalid credentials"


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to perform this action"


class NotFoundError(MarketError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class InvalidState(MarketError):
    status_code = 409
    code = "invalid_state"
    default_message = "This action is not allowed in the current state"


class NotVerified(MarketError):
    status_code = 409
    code = "not_verified"
    default_message = "Identity verification has not been approved"


class RateLimitExceeded(MarketError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many requests, please try again later."

    def __init__(self, retry_after: int, message: str | None = None):
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))
