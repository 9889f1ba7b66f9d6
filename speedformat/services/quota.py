"""
Quota Ledger - Monthly request ceilings tied to the active subscription.

Two modes:

- optimistic (default): ``check`` before work, a single atomic ``increment``
  after the work succeeds. Concurrent requests near the ceiling can both pass
  the check, so usage may overshoot the ceiling by the number of in-flight
  requests. Accepted in exchange for never serializing requests.
- strict (``QUOTA_STRICT_MODE=true``): one conditional UPDATE increments only
  while ``current_usage < monthly_limit`` and reports whether it did. The
  ceiling is never exceeded; the counter is consumed before formatting runs,
  so every attempt that passes the check counts, including formats that then
  fail. Nothing gives the unit back.

The counter never decreases except through ``reset_due_periods``.
"""

import calendar
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from speedformat.config import settings
from speedformat.db.models import Subscription, utc_now
from speedformat.models.api import SubscriptionStatus
from speedformat.models.domain import QuotaDecision

logger = get_logger(__name__)


def add_one_month(moment: datetime) -> datetime:
    """Same day next month, clamped to the last day of a shorter month."""
    year = moment.year + (1 if moment.month == 12 else 0)
    month = 1 if moment.month == 12 else moment.month + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class QuotaLedger:
    """Reads and advances subscription usage counters."""

    def __init__(self, db: AsyncSession, strict: bool | None = None):
        self.db = db
        self.strict = settings.quota_strict_mode if strict is None else strict

    async def check(self, account_id: int) -> QuotaDecision:
        """Allowed iff current_usage < monthly_limit. No active subscription is a denial."""
        stmt = select(Subscription.current_usage, Subscription.monthly_limit).where(
            Subscription.user_id == account_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
        )
        result = await self.db.execute(stmt)
        row = result.first()
        if row is None:
            logger.warning("quota_no_active_subscription", account_id=account_id)
            return QuotaDecision.denied_without_subscription()

        current_usage, monthly_limit = row
        return QuotaDecision(
            allowed=current_usage < monthly_limit,
            current_usage=current_usage,
            monthly_limit=monthly_limit,
        )

    async def consume_if_below(self, account_id: int) -> QuotaDecision:
        """Atomic conditional increment. Falls back to a read to explain a denial."""
        stmt = (
            update(Subscription)
            .where(
                Subscription.user_id == account_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.current_usage < Subscription.monthly_limit,
            )
            .values(current_usage=Subscription.current_usage + 1, updated_at=utc_now())
            .returning(Subscription.current_usage, Subscription.monthly_limit)
        )
        result = await self.db.execute(stmt)
        row = result.first()
        await self.db.commit()

        if row is None:
            decision = await self.check(account_id)
            return QuotaDecision(
                allowed=False,
                current_usage=decision.current_usage,
                monthly_limit=decision.monthly_limit,
            )

        current_usage, monthly_limit = row
        return QuotaDecision(
            allowed=True,
            current_usage=current_usage,
            monthly_limit=monthly_limit,
            consumed=True,
        )

    async def check_and_consume(self, account_id: int) -> QuotaDecision:
        """
        Gate a request on the monthly ceiling.

        In strict mode the returned decision has consumed=True when allowed and
        the usage recorder must not increment again.
        """
        if self.strict:
            decision = await self.consume_if_below(account_id)
        else:
            decision = await self.check(account_id)

        logger.debug(
            "quota_checked",
            account_id=account_id,
            allowed=decision.allowed,
            current_usage=decision.current_usage,
            monthly_limit=decision.monthly_limit,
            strict=self.strict,
        )
        return decision

    async def increment(self, account_id: int) -> bool:
        """Add one to the active subscription's counter. Returns False if none matched."""
        stmt = (
            update(Subscription)
            .where(
                Subscription.user_id == account_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .values(current_usage=Subscription.current_usage + 1, updated_at=utc_now())
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return bool(result.rowcount)

    async def reset_due_periods(self, now: datetime | None = None) -> int:
        """
        Zero the counter of every active subscription whose reset_date has passed.

        reset_date advances one calendar month at a time until it is in the
        future, so a late run does not leave it in the past.
        """
        now = now or datetime.now(UTC)
        stmt = select(Subscription).where(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.reset_date <= now,
        )
        result = await self.db.execute(stmt)
        due = list(result.scalars().all())

        for subscription in due:
            next_reset = subscription.reset_date
            while next_reset <= now:
                next_reset = add_one_month(next_reset)
            logger.info(
                "quota_period_reset",
                account_id=subscription.user_id,
                usage=subscription.current_usage,
                next_reset=next_reset.isoformat(),
            )
            subscription.current_usage = 0
            subscription.reset_date = next_reset

        await self.db.commit()
        return len(due)
