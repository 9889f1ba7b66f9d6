"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from speedformat.models.api import AccountRole, Language, PlanTier


class AuthType(str, Enum):
    """How a caller identity was established."""

    ANONYMOUS = "anonymous"
    BEARER = "bearer"
    API_KEY = "api_key"


class Capability(str, Enum):
    """Permissions granted by account role."""

    VIEW_ADMIN_STATS = "admin:stats"


ROLE_CAPABILITIES: dict[AccountRole, frozenset[Capability]] = {
    AccountRole.USER: frozenset(),
    AccountRole.ADMIN: frozenset({Capability.VIEW_ADMIN_STATS}),
}


@dataclass(frozen=True)
class PresentedCredentials:
    """Raw credentials pulled from an inbound request, not yet verified."""

    api_key: str | None = None
    bearer_token: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.api_key and not self.bearer_token


@dataclass(frozen=True)
class CallerIdentity:
    """
    Normalized identity of a caller.

    Anonymous callers have no account and sit on the lowest tier. The plan
    always reflects the live subscription, never claims carried in a token.
    """

    account_id: int | None
    plan: PlanTier
    auth_type: AuthType
    api_key_id: int | None = None
    api_key: str | None = None
    role: AccountRole = AccountRole.USER

    def __post_init__(self) -> None:
        """Validate identity consistency."""
        if self.auth_type == AuthType.ANONYMOUS and self.account_id is not None:
            raise ValueError("Anonymous identity cannot carry an account_id")
        if self.auth_type != AuthType.ANONYMOUS and self.account_id is None:
            raise ValueError(f"{self.auth_type.value} identity requires an account_id")
        if self.auth_type == AuthType.API_KEY and self.api_key_id is None:
            raise ValueError("API key identity requires api_key_id")

    @classmethod
    def anonymous(cls) -> "CallerIdentity":
        return cls(account_id=None, plan=PlanTier.FREE, auth_type=AuthType.ANONYMOUS)

    @property
    def is_anonymous(self) -> bool:
        return self.auth_type == AuthType.ANONYMOUS

    @property
    def plan_label(self) -> str:
        """Plan name as reported to clients."""
        return "anonymous" if self.is_anonymous else self.plan.value

    def can(self, capability: Capability) -> bool:
        """Capability predicate used for authorization checks."""
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())


@dataclass(frozen=True)
class QuotaDecision:
    """Result of a monthly quota check."""

    allowed: bool
    current_usage: int
    monthly_limit: int
    consumed: bool = False  # True when strict mode already incremented the counter

    def __post_init__(self) -> None:
        if self.current_usage < 0:
            raise ValueError(f"Usage cannot be negative: {self.current_usage}")
        if self.monthly_limit < 0:
            raise ValueError(f"Limit cannot be negative: {self.monthly_limit}")

    @classmethod
    def denied_without_subscription(cls) -> "QuotaDecision":
        return cls(allowed=False, current_usage=0, monthly_limit=0)


@dataclass(frozen=True)
class RateDecision:
    """Result of a rate limiter admission check."""

    admitted: bool
    key: str
    current: int
    limit: int
    retry_after_seconds: int
    reset_at: float

    @property
    def remaining(self) -> int:
        return max(self.limit - self.current, 0)


@dataclass(frozen=True)
class FormatResult:
    """Output of the formatting engine."""

    formatted_code: str
    formatter_used: str
    execution_time_ms: float

    @property
    def output_length(self) -> int:
        return len(self.formatted_code)


@dataclass(frozen=True)
class UsageEvent:
    """
    Fact describing one successfully formatted request.

    Emitted after the response is produced and consumed by the usage recorder.
    """

    account_id: int | None
    api_key_id: int | None
    language: Language
    input_length: int
    output_length: int
    execution_time_ms: float
    formatter_used: str
    ip_address: str | None
    user_agent: str | None
    quota_consumed: bool = False

    def __post_init__(self) -> None:
        if self.input_length < 0 or self.output_length < 0:
            raise ValueError("Lengths cannot be negative")
        if self.api_key_id is not None and self.account_id is None:
            raise ValueError("api_key_id requires account_id")


@dataclass(frozen=True)
class PlanLimits:
    """Resolved ceilings for one plan tier."""

    plan: PlanTier
    monthly_limit: int
    public_rate_limit: int
    api_rate_limit: int


@dataclass(frozen=True)
class GeneratedAPIKey:
    """Newly generated API key - plaintext is only available here."""

    key_id: int
    plaintext_key: str
    key_prefix: str
    key_name: str
    created_at: datetime
