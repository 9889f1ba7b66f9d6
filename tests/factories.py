"""
Mock factories shared by the test modules.

Imported by conftest after the environment is prepared.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock
from uuid import uuid4

from speedformat.db.models import Account, APIKey, Subscription
from speedformat.models.api import AccountRole, PlanTier, SubscriptionStatus

VALID_API_KEY = "sf_" + "0123456789abcdef" * 4


def make_result(
    scalar: Any = None,
    first: Any = None,
    scalars: list | None = None,
    rowcount: int = 0,
) -> MagicMock:
    """Build a mock SQLAlchemy result."""
    result = MagicMock()
    result.scalar_one_or_none = MagicMock(return_value=scalar)
    result.scalar_one = MagicMock(return_value=scalar)
    result.first = MagicMock(return_value=first)
    result.one = MagicMock(return_value=first)
    result.all = MagicMock(return_value=scalars or [])
    result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=scalars or [])))
    result.rowcount = rowcount
    return result


def create_mock_account(
    account_id: int = 1,
    email: str = "dev@example.com",
    name: str | None = "Dev",
    role: AccountRole = AccountRole.USER,
    is_active: bool = True,
    password_hash: str = "$argon2id$placeholder",
) -> MagicMock:
    """Factory function to create mock Account objects."""
    account = MagicMock(spec=Account)
    account.id = account_id
    account.uuid = uuid4()
    account.email = email
    account.name = name
    account.role = role.value
    account.is_active = is_active
    account.password_hash = password_hash
    account.created_at = datetime.now(UTC)
    account.updated_at = datetime.now(UTC)
    return account


def create_mock_subscription(
    account_id: int = 1,
    plan: PlanTier = PlanTier.FREE,
    monthly_limit: int = 100,
    current_usage: int = 0,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    reset_date: datetime | None = None,
) -> MagicMock:
    """Factory function to create mock Subscription objects."""
    subscription = MagicMock(spec=Subscription)
    subscription.id = account_id * 10
    subscription.user_id = account_id
    subscription.plan_type = plan.value
    subscription.status = status.value
    subscription.monthly_limit = monthly_limit
    subscription.current_usage = current_usage
    subscription.reset_date = reset_date or datetime.now(UTC) + timedelta(days=20)
    subscription.created_at = datetime.now(UTC)
    subscription.updated_at = datetime.now(UTC)
    return subscription


def create_mock_api_key(
    key_id: int = 7,
    account_id: int = 1,
    key_name: str = "CI key",
    is_active: bool = True,
) -> MagicMock:
    """Factory function to create mock APIKey objects."""
    api_key = MagicMock(spec=APIKey)
    api_key.id = key_id
    api_key.user_id = account_id
    api_key.key_name = key_name
    api_key.key_prefix = VALID_API_KEY[:10]
    api_key.key_hash = "0" * 64
    api_key.is_active = is_active
    api_key.last_used_at = None
    api_key.created_at = datetime.now(UTC)
    return api_key


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
