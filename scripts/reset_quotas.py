#!/usr/bin/env python3
"""
Monthly Quota Reset

Zeroes current_usage for every active subscription whose reset_date has
passed and advances reset_date by one calendar month.

Intended to run from cron, e.g. hourly:

    python scripts/reset_quotas.py
"""

import asyncio
import sys

from speedformat.db.session import close_engines, get_write_session
from speedformat.observability import get_logger, setup_logging
from speedformat.services.quota import QuotaLedger

logger = get_logger(__name__)


async def reset_quotas() -> int:
    """Run one reset pass and return the number of subscriptions reset."""
    try:
        async with get_write_session() as session:
            return await QuotaLedger(session).reset_due_periods()
    finally:
        await close_engines()


def main() -> int:
    setup_logging()
    try:
        count = asyncio.run(reset_quotas())
    except Exception as e:
        logger.error("quota_reset_failed", error=str(e), error_type=type(e).__name__)
        return 1
    logger.info("quota_reset_finished", subscriptions_reset=count)
    return 0


if __name__ == "__main__":
    sys.exit(main())
