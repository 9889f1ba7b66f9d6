"""
Tests for UsageStatsService and period parsing.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from speedformat.exceptions import InvalidPeriodError
from speedformat.models.api import UsagePeriod
from speedformat.services.stats import UsageStatsService, parse_period
from tests.factories import make_result


class TestParsePeriod:
    """Tests for parse_period."""

    def test_accepts_day_and_month(self):
        assert parse_period("day") == UsagePeriod.DAY
        assert parse_period("month") == UsagePeriod.MONTH

    def test_rejects_anything_else(self):
        with pytest.raises(InvalidPeriodError) as exc_info:
            parse_period("year")
        assert exc_info.value.status_code == 400


class TestAccountUsage:
    """Tests for UsageStatsService.account_usage."""

    @pytest.mark.asyncio
    async def test_totals_and_breakdown(self, db_session):
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(first=(5, 100, 120, 2.346, 2)),
                make_result(scalars=[("json", 3, 1.5), ("css", 2, None)]),
            ]
        )

        stats = await UsageStatsService(db_session).account_usage(1, UsagePeriod.MONTH)

        assert stats.period == UsagePeriod.MONTH
        assert stats.total_requests == 5
        assert stats.total_input_chars == 100
        assert stats.total_output_chars == 120
        assert stats.avg_execution_time == 2.35
        assert stats.languages_used == 2
        assert [(b.language, b.count) for b in stats.language_breakdown] == [
            ("json", 3),
            ("css", 2),
        ]
        assert stats.language_breakdown[1].avg_execution_time == 0.0

    @pytest.mark.asyncio
    async def test_no_usage_is_all_zero(self, db_session):
        db_session.execute = AsyncMock(
            side_effect=[make_result(first=(0, 0, 0, None, 0)), make_result()]
        )

        stats = await UsageStatsService(db_session).account_usage(1, UsagePeriod.DAY)

        assert stats.total_requests == 0
        assert stats.avg_execution_time == 0.0
        assert stats.language_breakdown == []


class TestAPIKeyUsage:
    """Tests for UsageStatsService.api_key_usage."""

    @pytest.mark.asyncio
    async def test_daily_breakdown(self, db_session):
        day = datetime(2026, 10, 17, tzinfo=UTC)
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(first=(4, 40, 44, 3.0, 1)),
                make_result(scalars=[(day, 4, 3.0)]),
            ]
        )

        stats = await UsageStatsService(db_session).api_key_usage(7, UsagePeriod.MONTH)

        assert stats.total_requests == 4
        assert len(stats.daily_usage) == 1
        assert stats.daily_usage[0].date == "2026-10-17"
        assert stats.daily_usage[0].requests == 4


class TestAdminStats:
    """Tests for UsageStatsService.admin_stats."""

    @pytest.mark.asyncio
    async def test_totals_and_active_users(self, db_session):
        day = datetime(2026, 10, 17, tzinfo=UTC)
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(scalar=3),
                make_result(scalar=2),
                make_result(first=(10, 1.234, 500)),
                make_result(scalars=[(day, 4, 2)]),
            ]
        )

        stats = await UsageStatsService(db_session).admin_stats()

        assert stats.total_users == 3
        assert stats.total_api_keys == 2
        assert stats.total_requests == 10
        assert stats.avg_execution_time == 1.23
        assert stats.total_chars_processed == 500
        assert stats.daily_usage[0].active_users == 2
        assert stats.daily_usage[0].avg_execution_time is None
