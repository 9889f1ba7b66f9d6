"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Every error carries a stable machine-readable ``kind`` and the HTTP status it
maps to. The API layer renders them as ``{"error": kind, "details": detail}``
plus any structured extras from ``extra_fields()``.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Stable error kinds exposed to API clients."""

    MALFORMED = "malformed"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    THROTTLED = "throttled"
    QUOTA_EXCEEDED = "quota_exceeded"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"


class FormatterServiceError(Exception):
    """Base exception for all service errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)

    def extra_fields(self) -> dict[str, int | str]:
        """Structured fields added to the error response body."""
        return {}


# ============================================================================
# Malformed - client-caused input errors
# ============================================================================


class MalformedAPIKeyError(FormatterServiceError):
    """Raised when a presented API key fails the format check."""

    kind = ErrorKind.MALFORMED
    status_code = 401

    def __init__(self) -> None:
        super().__init__("Invalid API key format")


class InvalidPeriodError(FormatterServiceError):
    """Raised when a usage period other than day/month is requested."""

    kind = ErrorKind.MALFORMED
    status_code = 400

    def __init__(self, period: str) -> None:
        self.period = period
        super().__init__(f"Invalid period '{period}'. Use 'day' or 'month'")


class UnsupportedLanguageError(FormatterServiceError):
    """Raised when no formatter exists for the requested language."""

    kind = ErrorKind.MALFORMED
    status_code = 400

    def __init__(self, language: str) -> None:
        self.language = language
        super().__init__(f"Unsupported language: {language}")


class FormattingFailedError(FormatterServiceError):
    """Raised when the formatter rejects the submitted code."""

    kind = ErrorKind.MALFORMED
    status_code = 400

    def __init__(self, language: str, message: str) -> None:
        self.language = language
        self.message = message
        super().__init__(f"Failed to format {language} code: {message}")


# ============================================================================
# Unauthenticated
# ============================================================================


class MissingCredentialsError(FormatterServiceError):
    """Raised when an endpoint requires credentials and none were presented."""

    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class InvalidTokenError(FormatterServiceError):
    """Raised when a bearer token signature or structure is invalid."""

    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class TokenExpiredError(FormatterServiceError):
    """Raised when a bearer token is past its expiry."""

    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401

    def __init__(self) -> None:
        super().__init__("Token expired")


class InvalidAPIKeyError(FormatterServiceError):
    """Raised when a well-formed API key does not resolve to a usable credential."""

    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401

    def __init__(self, message: str = "Invalid or inactive API key") -> None:
        super().__init__(message)


class UnknownAccountError(FormatterServiceError):
    """Raised when a token points at an account that is gone or inactive."""

    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__("Account not found or inactive")


class InvalidCredentialsError(FormatterServiceError):
    """Raised on a bad email/password pair or a wrong current password."""

    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class PermissionDeniedError(FormatterServiceError):
    """Raised when an authenticated account lacks a required capability."""

    kind = ErrorKind.FORBIDDEN
    status_code = 403

    def __init__(self, capability: str) -> None:
        self.capability = capability
        super().__init__(f"Missing permission: {capability}")


# ============================================================================
# Throttled / Quota
# ============================================================================


class RateLimitExceededError(FormatterServiceError):
    """Raised when a short-window rate ceiling is hit."""

    kind = ErrorKind.THROTTLED
    status_code = 429

    def __init__(self, current: int, limit: int, retry_after: int) -> None:
        self.current = current
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded: {current} of {limit} requests. "
            f"Try again in {retry_after} seconds"
        )

    def extra_fields(self) -> dict[str, int | str]:
        return {
            "current_requests": self.current,
            "rate_limit": self.limit,
            "retry_after_seconds": self.retry_after,
        }


class QuotaExceededError(FormatterServiceError):
    """Raised when the monthly request ceiling is reached."""

    kind = ErrorKind.QUOTA_EXCEEDED
    status_code = 429

    def __init__(self, current_usage: int, monthly_limit: int) -> None:
        self.current_usage = current_usage
        self.monthly_limit = monthly_limit
        super().__init__(
            f"Monthly limit reached: {current_usage} of {monthly_limit} requests used"
        )

    def extra_fields(self) -> dict[str, int | str]:
        return {"current_usage": self.current_usage, "monthly_limit": self.monthly_limit}


# ============================================================================
# Not found / Conflict
# ============================================================================


class AccountNotFoundError(FormatterServiceError):
    """Raised when an account referenced by the caller doesn't exist."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__("Account not found")


class APIKeyNotFoundError(FormatterServiceError):
    """Raised when an API key doesn't exist or isn't owned by the caller."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, key_id: int) -> None:
        self.key_id = key_id
        super().__init__("API key not found")


class EmailAlreadyExistsError(FormatterServiceError):
    """Raised when an email is already registered (case-insensitive)."""

    kind = ErrorKind.CONFLICT
    status_code = 409

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("User with this email already exists")


class APIKeyLimitReachedError(FormatterServiceError):
    """Raised when an account already holds the maximum number of live keys."""

    kind = ErrorKind.CONFLICT
    status_code = 409

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Maximum of {limit} active API keys allowed")


# ============================================================================
# Unavailable
# ============================================================================


class StoreUnavailableError(FormatterServiceError):
    """Raised when the identity store times out or refuses connections."""

    kind = ErrorKind.UNAVAILABLE
    status_code = 503

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__("Service temporarily unavailable")


class FormatterUnavailableError(FormatterServiceError):
    """Raised when the formatting engine cannot be run."""

    kind = ErrorKind.UNAVAILABLE
    status_code = 503

    def __init__(self, formatter: str, message: str) -> None:
        self.formatter = formatter
        self.message = message
        super().__init__("Formatter temporarily unavailable")
