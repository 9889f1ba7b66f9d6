"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import INET
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Account(Base):
    """
    ORM model for users table.

    Accounts are soft-deleted through is_active and never physically removed
    while usage history references them.
    """

    __tablename__ = "users"

    # Primary Key (internal) and public-facing identifier
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), nullable=False, unique=True, default=uuid4
    )

    # Identity - email is stored lowercased
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Capabilities
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("email = lower(email)", name="ck_users_email_lowercase"),
        CheckConstraint("role IN ('user', 'admin')", name="ck_users_role"),
        Index("idx_users_active", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Account(id={self.id}, email={self.email}, active={self.is_active})>"


class Subscription(Base):
    """
    ORM model for subscriptions table.

    Holds the plan tier and the current-period usage counter. At most one
    active subscription exists per account.
    """

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    plan_type: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    monthly_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    current_usage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reset_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "plan_type IN ('free', 'basic', 'pro', 'team')", name="ck_subscriptions_plan"
        ),
        CheckConstraint(
            "status IN ('active', 'cancelled', 'expired')", name="ck_subscriptions_status"
        ),
        CheckConstraint("current_usage >= 0", name="ck_subscriptions_usage_non_negative"),
        CheckConstraint("monthly_limit > 0", name="ck_subscriptions_limit_positive"),
        Index(
            "uq_subscriptions_one_active",
            "user_id",
            unique=True,
            postgresql_where=(status == "active"),
        ),
        Index("idx_subscriptions_reset_date", "reset_date"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, plan={self.plan_type}, "
            f"usage={self.current_usage}/{self.monthly_limit})>"
        )


class APIKey(Base):
    """
    ORM model for api_keys table.

    The plaintext key is shown once at creation; only its SHA-256 digest and
    a short display prefix are stored.
    """

    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    key_name: Mapped[str] = mapped_column(String(100), nullable=False)
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    key_prefix: Mapped[str] = mapped_column(String(12), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_api_keys_user_active", "user_id", postgresql_where=(is_active.is_(True))),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<APIKey(id={self.id}, user_id={self.user_id}, name={self.key_name}, "
            f"active={self.is_active})>"
        )


class UsageLog(Base):
    """
    ORM model for usage_logs table.

    Append-only. Account and key references become NULL when the referenced
    row is deleted so history survives.
    """

    __tablename__ = "usage_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    api_key_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("api_keys.id", ondelete="SET NULL"), nullable=True
    )

    language: Mapped[str] = mapped_column(String(20), nullable=False)
    input_length: Mapped[int] = mapped_column(Integer, nullable=False)
    output_length: Mapped[int] = mapped_column(Integer, nullable=False)
    execution_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    formatter_used: Mapped[str] = mapped_column(String(50), nullable=False)

    ip_address: Mapped[str | None] = mapped_column(INET, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_usage_logs_user_created", "user_id", "created_at"),
        Index("idx_usage_logs_api_key_created", "api_key_id", "created_at"),
        Index("idx_usage_logs_created", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<UsageLog(id={self.id}, user_id={self.user_id}, language={self.language}, "
            f"time={self.execution_time_ms}ms)>"
        )
