"""
Identity Store - Accounts, subscriptions and password credentials.

NO DICTIONARIES - Returns ORM rows or typed domain objects.
"""

from datetime import UTC, datetime

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from speedformat.config import settings
from speedformat.db.models import Account, Subscription
from speedformat.exceptions import (
    AccountNotFoundError,
    EmailAlreadyExistsError,
    InvalidCredentialsError,
)
from speedformat.models.api import AccountRole, PlanTier, SubscriptionStatus
from speedformat.services.plans import limits_for
from speedformat.services.quota import add_one_month

logger = get_logger(__name__)

_password_hasher = PasswordHasher()


class IdentityService:
    """Account lifecycle backed by the users and subscriptions tables."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.password_hasher = _password_hasher

    # ========================================================================
    # Lookups
    # ========================================================================

    async def get_account(self, account_id: int) -> Account | None:
        stmt = select(Account).where(Account.id == account_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_account_by_email(self, email: str) -> Account | None:
        stmt = select(Account).where(Account.email == email.lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_subscription(self, account_id: int) -> Subscription | None:
        stmt = select(Subscription).where(
            Subscription.user_id == account_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_account_with_subscription(
        self, account_id: int
    ) -> tuple[Account, Subscription | None] | None:
        """Account row and its active subscription (if any) in one round trip."""
        stmt = (
            select(Account, Subscription)
            .outerjoin(
                Subscription,
                and_(
                    Subscription.user_id == Account.id,
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                ),
            )
            .where(Account.id == account_id)
        )
        result = await self.db.execute(stmt)
        row = result.first()
        if row is None:
            return None
        account, subscription = row
        return account, subscription

    async def require_active_account(self, account_id: int) -> Account:
        """
        Fetch an active account.

        Raises:
            AccountNotFoundError if the account is missing or deactivated
        """
        account = await self.get_account(account_id)
        if account is None or not account.is_active:
            raise AccountNotFoundError(account_id)
        return account

    # ========================================================================
    # Registration and login
    # ========================================================================

    async def register(
        self,
        email: str,
        password: str,
        name: str | None = None,
        plan: PlanTier = PlanTier.FREE,
    ) -> tuple[Account, Subscription]:
        """
        Create an account and its active subscription.

        Raises:
            EmailAlreadyExistsError if the email is taken (case-insensitive)
        """
        email = email.lower()
        if await self.get_account_by_email(email) is not None:
            logger.warning("registration_duplicate_email")
            raise EmailAlreadyExistsError(email)

        role = AccountRole.USER
        if settings.bootstrap_admin_email and email == settings.bootstrap_admin_email.lower():
            role = AccountRole.ADMIN

        account = Account(
            email=email,
            password_hash=self.password_hasher.hash(password),
            name=name,
            role=role.value,
            is_active=True,
        )
        self.db.add(account)

        try:
            await self.db.flush()
            limits = limits_for(plan)
            subscription = Subscription(
                user_id=account.id,
                plan_type=plan.value,
                status=SubscriptionStatus.ACTIVE.value,
                monthly_limit=limits.monthly_limit,
                current_usage=0,
                reset_date=add_one_month(datetime.now(UTC)),
            )
            self.db.add(subscription)
            await self.db.commit()
        except IntegrityError:
            # Concurrent registration won the unique index on email
            await self.db.rollback()
            logger.warning("registration_conflict")
            raise EmailAlreadyExistsError(email) from None

        await self.db.refresh(account)
        await self.db.refresh(subscription)

        logger.info(
            "account_registered",
            account_id=account.id,
            plan=plan.value,
            role=role.value,
        )
        return account, subscription

    async def authenticate(self, email: str, password: str) -> Account:
        """
        Verify an email/password pair.

        Unknown email, wrong password and deactivated account all raise the
        same InvalidCredentialsError.
        """
        account = await self.get_account_by_email(email)
        if account is None or not account.is_active:
            logger.warning("login_failed", reason="unknown_or_inactive")
            raise InvalidCredentialsError()

        if not self._verify_password(account.password_hash, password):
            logger.warning("login_failed", reason="bad_password", account_id=account.id)
            raise InvalidCredentialsError()

        if self.password_hasher.check_needs_rehash(account.password_hash):
            account.password_hash = self.password_hasher.hash(password)
            await self.db.commit()

        logger.info("login_succeeded", account_id=account.id)
        return account

    def _verify_password(self, password_hash: str, password: str) -> bool:
        try:
            return self.password_hasher.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    # ========================================================================
    # Profile
    # ========================================================================

    async def update_profile(
        self, account_id: int, name: str | None = None, email: str | None = None
    ) -> Account:
        """
        Update name and/or email.

        Raises:
            EmailAlreadyExistsError if the new email belongs to another account
        """
        account = await self.require_active_account(account_id)

        if email is not None and email.lower() != account.email:
            existing = await self.get_account_by_email(email)
            if existing is not None and existing.id != account_id:
                raise EmailAlreadyExistsError(email)
            account.email = email.lower()

        if name is not None:
            account.name = name

        # Rollback expires the instance, so read the email first
        requested_email = account.email
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise EmailAlreadyExistsError(requested_email) from None

        await self.db.refresh(account)
        logger.info("profile_updated", account_id=account_id)
        return account

    async def change_password(
        self, account_id: int, current_password: str, new_password: str
    ) -> None:
        """
        Replace the password after verifying the current one.

        Raises:
            InvalidCredentialsError if current_password is wrong
        """
        account = await self.require_active_account(account_id)
        if not self._verify_password(account.password_hash, current_password):
            logger.warning("password_change_rejected", account_id=account_id)
            raise InvalidCredentialsError("Current password is incorrect")

        account.password_hash = self.password_hasher.hash(new_password)
        await self.db.commit()
        logger.info("password_changed", account_id=account_id)

    async def deactivate(self, account_id: int) -> None:
        """Soft-delete: the account and all its keys stop resolving."""
        account = await self.require_active_account(account_id)
        account.is_active = False
        await self.db.commit()
        logger.info("account_deactivated", account_id=account_id)
