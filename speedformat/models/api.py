"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

import re
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from speedformat.config import settings


class PlanTier(str, Enum):
    """Subscription plan tiers, lowest first."""

    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    TEAM = "team"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class AccountRole(str, Enum):
    """Account roles."""

    USER = "user"
    ADMIN = "admin"


class Language(str, Enum):
    """Languages accepted by the formatting endpoints."""

    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    JSON = "json"
    CSS = "css"
    HTML = "html"
    MARKDOWN = "markdown"
    RUST = "rust"


class UsagePeriod(str, Enum):
    """Aggregation window for usage statistics."""

    DAY = "day"
    MONTH = "month"


# ============================================================================
# Format Models
# ============================================================================


class FormatRequest(BaseModel):
    """POST /format and POST /api/v1/format request body."""

    code: str = Field(..., min_length=1, description="Source code to format")
    language: Language = Field(..., description="Language of the submitted code")

    @field_validator("code")
    @classmethod
    def validate_code_size(cls, v: str) -> str:
        """Reject payloads above the configured size."""
        if len(v) > settings.max_code_length:
            raise ValueError(f"Code exceeds {settings.max_code_length} characters")
        if not v.strip():
            raise ValueError("Code is required")
        return v


class FormatResponse(BaseModel):
    """Successful formatting response."""

    formatted_code: str
    execution_time_ms: float
    formatter_used: str
    status: str = "success"
    input_length: int
    output_length: int
    user_plan: str


# ============================================================================
# Auth Models
# ============================================================================

_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "one lowercase letter"),
    (re.compile(r"[A-Z]"), "one uppercase letter"),
    (re.compile(r"\d"), "one number"),
)


def _check_password_strength(value: str) -> str:
    missing = [label for pattern, label in _PASSWORD_RULES if not pattern.search(value)]
    if missing:
        raise ValueError("Password must contain at least " + ", ".join(missing))
    return value


def _clean_name(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError("Name cannot be blank")
    return value


class RegisterRequest(BaseModel):
    """POST /auth/register request body."""

    email: EmailStr = Field(..., description="Account email (case-insensitive)")
    password: str = Field(..., min_length=8, max_length=128)
    name: str | None = Field(None, min_length=1, max_length=100)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Store and compare emails lowercased."""
        return v.lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Require mixed case and a digit."""
        return _check_password_strength(v)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        return _clean_name(v)


class LoginRequest(BaseModel):
    """POST /auth/login request body."""

    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class ProfileUpdateRequest(BaseModel):
    """PATCH /auth/profile request body."""

    name: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return v.lower() if v is not None else None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        return _clean_name(v)


class ChangePasswordRequest(BaseModel):
    """POST /auth/change-password request body."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return _check_password_strength(v)


class SubscriptionResponse(BaseModel):
    """Subscription summary embedded in profile responses."""

    plan_type: PlanTier
    status: SubscriptionStatus
    monthly_limit: int
    current_usage: int
    reset_date: datetime


class UserResponse(BaseModel):
    """Public account representation."""

    id: int
    uuid: UUID
    email: str
    name: str | None
    role: AccountRole
    is_active: bool
    created_at: datetime
    subscription: SubscriptionResponse | None = None


class AuthResponse(BaseModel):
    """Response for register and login."""

    message: str
    user: UserResponse
    token: str
    expires_in: str


class LanguageUsage(BaseModel):
    """Per-language usage breakdown entry."""

    language: str
    count: int
    avg_execution_time: float


class DailyUsage(BaseModel):
    """Per-day usage breakdown entry."""

    date: str
    requests: int
    avg_execution_time: float | None = None
    active_users: int | None = None


class UsageStatsResponse(BaseModel):
    """Aggregate usage statistics for an account or API key."""

    period: UsagePeriod
    total_requests: int
    total_input_chars: int
    total_output_chars: int
    avg_execution_time: float
    languages_used: int
    language_breakdown: list[LanguageUsage] = Field(default_factory=list)
    daily_usage: list[DailyUsage] = Field(default_factory=list)


class UserUpdateResponse(BaseModel):
    """PATCH /auth/profile response."""

    message: str
    user: UserResponse


class ProfileResponse(BaseModel):
    """GET /auth/profile response."""

    user: UserResponse
    usage_stats: UsageStatsResponse


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


# ============================================================================
# API Key Models
# ============================================================================


class APIKeyCreateRequest(BaseModel):
    """POST /api-keys request body."""

    key_name: str = Field(..., min_length=1, max_length=100, description="Human label")

    @field_validator("key_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Key name cannot be blank")
        return v


class APIKeyRenameRequest(BaseModel):
    """PATCH /api-keys/{id} request body."""

    key_name: str = Field(..., min_length=1, max_length=100)

    @field_validator("key_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Key name cannot be blank")
        return v


class APIKeyResponse(BaseModel):
    """API key metadata (no secret)."""

    id: int
    key_name: str
    key_prefix: str
    is_active: bool
    last_used_at: datetime | None
    created_at: datetime


class APIKeyCreateResponse(APIKeyResponse):
    """API key creation response - plaintext key shown once."""

    api_key: str
    warning: str = "Store this key securely. It will not be shown again."


class APIKeyListResponse(BaseModel):
    """GET /api-keys response."""

    api_keys: list[APIKeyResponse]
    total: int


# ============================================================================
# Operational Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    service: str
    version: str
    database: str
    timestamp: str


class BenchmarkResponse(BaseModel):
    """GET /benchmark response."""

    iterations: int
    average_time_ms: float
    min_time_ms: float
    max_time_ms: float
    sample_code_length: int
    throughput_chars_per_ms: float


class AdminStatsResponse(BaseModel):
    """GET /admin/stats response."""

    total_users: int
    total_api_keys: int
    total_requests: int
    avg_execution_time: float
    total_chars_processed: int
    daily_usage: list[DailyUsage]
