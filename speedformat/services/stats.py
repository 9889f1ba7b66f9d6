"""
Usage Statistics - Aggregate queries over usage_logs.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy import ColumnElement, Select, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from speedformat.db.models import Account, APIKey, UsageLog
from speedformat.exceptions import InvalidPeriodError
from speedformat.models.api import (
    AdminStatsResponse,
    DailyUsage,
    LanguageUsage,
    UsagePeriod,
    UsageStatsResponse,
)

PERIOD_DAYS = {UsagePeriod.DAY: 1, UsagePeriod.MONTH: 30}
KEY_DAILY_DAYS = 7
ADMIN_DAILY_DAYS = 30


def parse_period(value: str) -> UsagePeriod:
    """Accept 'day' or 'month'; anything else is a client error."""
    try:
        return UsagePeriod(value)
    except ValueError:
        raise InvalidPeriodError(value) from None


def _since(days: int, now: datetime | None = None) -> datetime:
    return (now or datetime.now(UTC)) - timedelta(days=days)


def _day() -> ColumnElement[datetime]:
    return func.date_trunc("day", UsageLog.created_at)


class UsageStatsService:
    """Read-only usage aggregates for accounts, keys and the admin dashboard."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _totals(self, stmt: Select) -> tuple[int, int, int, float, int]:
        result = await self.db.execute(stmt)
        row = result.one()
        total, chars_in, chars_out, avg_time, languages = row
        return (
            int(total or 0),
            int(chars_in or 0),
            int(chars_out or 0),
            round(float(avg_time or 0), 2),
            int(languages or 0),
        )

    @staticmethod
    def _totals_select() -> Select:
        return select(
            func.count(UsageLog.id),
            func.coalesce(func.sum(UsageLog.input_length), 0),
            func.coalesce(func.sum(UsageLog.output_length), 0),
            func.avg(UsageLog.execution_time_ms),
            func.count(distinct(UsageLog.language)),
        )

    async def account_usage(self, account_id: int, period: UsagePeriod) -> UsageStatsResponse:
        """Totals plus a per-language breakdown for an account."""
        since = _since(PERIOD_DAYS[period])
        scope = (UsageLog.user_id == account_id, UsageLog.created_at >= since)

        totals = await self._totals(self._totals_select().where(*scope))

        breakdown_stmt = (
            select(
                UsageLog.language,
                func.count(UsageLog.id),
                func.avg(UsageLog.execution_time_ms),
            )
            .where(*scope)
            .group_by(UsageLog.language)
            .order_by(func.count(UsageLog.id).desc())
        )
        result = await self.db.execute(breakdown_stmt)
        breakdown = [
            LanguageUsage(
                language=language,
                count=int(count),
                avg_execution_time=round(float(avg_time or 0), 2),
            )
            for language, count, avg_time in result.all()
        ]

        return UsageStatsResponse(
            period=period,
            total_requests=totals[0],
            total_input_chars=totals[1],
            total_output_chars=totals[2],
            avg_execution_time=totals[3],
            languages_used=totals[4],
            language_breakdown=breakdown,
        )

    async def api_key_usage(self, api_key_id: int, period: UsagePeriod) -> UsageStatsResponse:
        """Totals for one key plus a seven-day daily breakdown."""
        since = _since(PERIOD_DAYS[period])
        totals = await self._totals(
            self._totals_select().where(
                UsageLog.api_key_id == api_key_id, UsageLog.created_at >= since
            )
        )

        day = _day()
        daily_stmt = (
            select(day, func.count(UsageLog.id), func.avg(UsageLog.execution_time_ms))
            .where(
                UsageLog.api_key_id == api_key_id,
                UsageLog.created_at >= _since(KEY_DAILY_DAYS),
            )
            .group_by(day)
            .order_by(day.desc())
        )
        result = await self.db.execute(daily_stmt)
        daily = [
            DailyUsage(
                date=bucket.date().isoformat(),
                requests=int(count),
                avg_execution_time=round(float(avg_time or 0), 2),
            )
            for bucket, count, avg_time in result.all()
        ]

        return UsageStatsResponse(
            period=period,
            total_requests=totals[0],
            total_input_chars=totals[1],
            total_output_chars=totals[2],
            avg_execution_time=totals[3],
            languages_used=totals[4],
            daily_usage=daily,
        )

    async def admin_stats(self) -> AdminStatsResponse:
        """Service-wide totals and a thirty-day daily breakdown."""
        users = await self.db.execute(
            select(func.count(Account.id)).where(Account.is_active.is_(True))
        )
        keys = await self.db.execute(
            select(func.count(APIKey.id)).where(APIKey.is_active.is_(True))
        )
        totals = await self.db.execute(
            select(
                func.count(UsageLog.id),
                func.avg(UsageLog.execution_time_ms),
                func.coalesce(func.sum(UsageLog.input_length + UsageLog.output_length), 0),
            )
        )
        total_requests, avg_time, chars = totals.one()

        day = _day()
        daily_stmt = (
            select(day, func.count(UsageLog.id), func.count(distinct(UsageLog.user_id)))
            .where(UsageLog.created_at >= _since(ADMIN_DAILY_DAYS))
            .group_by(day)
            .order_by(day.desc())
        )
        daily_result = await self.db.execute(daily_stmt)

        return AdminStatsResponse(
            total_users=int(users.scalar_one() or 0),
            total_api_keys=int(keys.scalar_one() or 0),
            total_requests=int(total_requests or 0),
            avg_execution_time=round(float(avg_time or 0), 2),
            total_chars_processed=int(chars or 0),
            daily_usage=[
                DailyUsage(
                    date=bucket.date().isoformat(),
                    requests=int(count),
                    active_users=int(active),
                )
                for bucket, count, active in daily_result.all()
            ],
        )
