"""Domain errors raised by the short-link service.

Each error carries the machine-readable code and the HTTP status it maps to,
so the boundary (see ``shortener.main``) renders every error the same way.
"""

from shortener.enums import ErrorCode

__all__ = [
    "ShortenerError",
    "InvalidInputError",
    "InvalidURLError",
    "InvalidCodeError",
    "NotFoundError",
    "ExpiredError",
    "CodeTakenError",
    "UnauthorizedError",
    "RateLimitedError",
    "GenerationExhaustedError",
]


class ShortenerError(Exception):
    """Base exception for all application-specific errors."""

    error_code = ErrorCode.INTERNAL_ERROR
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None, details: str | None = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


class InvalidInputError(ShortenerError):
    """Raised for malformed request input."""

    error_code = ErrorCode.INVALID_INPUT
    status_code = 400
    message = "Invalid request"


class InvalidURLError(InvalidInputError):
    """Raised when the destination URL is not an acceptable http(s) URL."""

    message = "Invalid URL format"

    def __init__(self, message: str | None = None, details: str | None = None):
        super().__init__(
            message,
            details or "URL must start with http:// or https:// and be 10-2083 characters long",
        )


class InvalidCodeError(InvalidInputError):
    """Raised when a custom alias is not 3-16 alphanumeric characters."""

    message = "Invalid short code format"


class NotFoundError(ShortenerError):
    """Raised when no link exists for a short code."""

    error_code = ErrorCode.NOT_FOUND
    status_code = 404
    message = "URL not found"


class ExpiredError(ShortenerError):
    """Raised when a link exists but its expiration instant has passed."""

    error_code = ErrorCode.EXPIRED
    status_code = 410
    message = "URL has expired"


class CodeTakenError(ShortenerError):
    """Raised when the requested short code already belongs to another link."""

    error_code = ErrorCode.CONFLICT
    status_code = 409
    message = "Short code already taken"


class UnauthorizedError(ShortenerError):
    """Raised when a request carries no valid API key."""

    error_code = ErrorCode.UNAUTHORIZED
    status_code = 401
    message = "Invalid or missing API key"


class RateLimitedError(ShortenerError):
    """Raised when the caller exhausted its budget for the current window."""

    error_code = ErrorCode.RATE_LIMITED
    status_code = 429
    message = "Rate limit exceeded"

    def __init__(self, retry_after: int, headers: dict[str, str] | None = None):
        super().__init__(details=f"Try again in {retry_after} seconds")
        self.retry_after = retry_after
        self.headers = headers or {}


class GenerationExhaustedError(ShortenerError):
    """Raised when every generated candidate collided with an existing code."""

    message = "Failed to generate a unique short code"
