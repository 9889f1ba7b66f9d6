"""
Tests for exception classes.

Covers error kinds, HTTP status mapping and structured extras.
"""

import pytest

from speedformat.exceptions import (
    AccountNotFoundError,
    APIKeyLimitReachedError,
    APIKeyNotFoundError,
    EmailAlreadyExistsError,
    ErrorKind,
    FormatterServiceError,
    FormatterUnavailableError,
    FormattingFailedError,
    InvalidAPIKeyError,
    InvalidCredentialsError,
    InvalidPeriodError,
    InvalidTokenError,
    MalformedAPIKeyError,
    MissingCredentialsError,
    PermissionDeniedError,
    QuotaExceededError,
    RateLimitExceededError,
    StoreUnavailableError,
    TokenExpiredError,
    UnknownAccountError,
    UnsupportedLanguageError,
)


class TestFormatterServiceError:
    """Tests for the base error."""

    def test_is_exception(self):
        assert issubclass(FormatterServiceError, Exception)

    def test_defaults_to_internal(self):
        exc = FormatterServiceError("boom")
        assert exc.kind == ErrorKind.INTERNAL
        assert exc.status_code == 500
        assert exc.detail == "boom"
        assert exc.extra_fields() == {}


class TestStatusMapping:
    """Every error maps to a stable kind and HTTP status."""

    @pytest.mark.parametrize(
        "exc,kind,status",
        [
            (MalformedAPIKeyError(), ErrorKind.MALFORMED, 401),
            (InvalidPeriodError("week"), ErrorKind.MALFORMED, 400),
            (UnsupportedLanguageError("cobol"), ErrorKind.MALFORMED, 400),
            (FormattingFailedError("json", "Unexpected token"), ErrorKind.MALFORMED, 400),
            (MissingCredentialsError(), ErrorKind.UNAUTHENTICATED, 401),
            (InvalidTokenError(), ErrorKind.UNAUTHENTICATED, 401),
            (TokenExpiredError(), ErrorKind.UNAUTHENTICATED, 401),
            (InvalidAPIKeyError(), ErrorKind.UNAUTHENTICATED, 401),
            (UnknownAccountError(3), ErrorKind.UNAUTHENTICATED, 401),
            (InvalidCredentialsError(), ErrorKind.UNAUTHENTICATED, 401),
            (PermissionDeniedError("admin:stats"), ErrorKind.FORBIDDEN, 403),
            (RateLimitExceededError(11, 10, 30), ErrorKind.THROTTLED, 429),
            (QuotaExceededError(100, 100), ErrorKind.QUOTA_EXCEEDED, 429),
            (AccountNotFoundError(3), ErrorKind.NOT_FOUND, 404),
            (APIKeyNotFoundError(3), ErrorKind.NOT_FOUND, 404),
            (EmailAlreadyExistsError("a@b.co"), ErrorKind.CONFLICT, 409),
            (APIKeyLimitReachedError(10), ErrorKind.CONFLICT, 409),
            (StoreUnavailableError("api_key_lookup"), ErrorKind.UNAVAILABLE, 503),
            (FormatterUnavailableError("prettier (babel)", "timed out"), ErrorKind.UNAVAILABLE, 503),
        ],
    )
    def test_kind_and_status(self, exc, kind, status):
        assert exc.kind == kind
        assert exc.status_code == status
        assert isinstance(exc, FormatterServiceError)


class TestQuotaExceededError:
    """Tests for QuotaExceededError."""

    def test_extras_carry_usage_and_limit(self):
        exc = QuotaExceededError(current_usage=100, monthly_limit=100)
        assert exc.extra_fields() == {"current_usage": 100, "monthly_limit": 100}

    def test_message_format(self):
        assert "100 of 100" in str(QuotaExceededError(100, 100))


class TestRateLimitExceededError:
    """Tests for RateLimitExceededError."""

    def test_extras(self):
        exc = RateLimitExceededError(current=11, limit=10, retry_after=42)
        assert exc.extra_fields() == {
            "current_requests": 11,
            "rate_limit": 10,
            "retry_after_seconds": 42,
        }
        assert exc.retry_after == 42


class TestMessages:
    """Client-facing messages."""

    def test_duplicate_email_message(self):
        assert str(EmailAlreadyExistsError("a@b.co")) == "User with this email already exists"

    def test_invalid_period_names_value(self):
        assert "week" in str(InvalidPeriodError("week"))

    def test_unknown_account_does_not_leak_id(self):
        exc = UnknownAccountError(12345)
        assert exc.account_id == 12345
        assert "12345" not in exc.detail
