"""
Usage Recorder - Post-response persistence of usage facts.

``record()`` returns immediately. The insert and the dependent quota
increment run in a detached task with their own session, after the response
has been sent. Failures are logged and counted, never raised to the caller.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from speedformat.db.models import UsageLog
from speedformat.db.session import get_write_session
from speedformat.models.domain import UsageEvent
from speedformat.observability.metrics import metrics
from speedformat.services.background import BackgroundTasks, background_tasks
from speedformat.services.quota import QuotaLedger

logger = get_logger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class UsageRecorder:
    """Fire-and-forget writer for usage_logs plus the quota increment."""

    def __init__(
        self,
        session_factory: SessionFactory = get_write_session,
        tasks: BackgroundTasks = background_tasks,
    ) -> None:
        self.session_factory = session_factory
        self.tasks = tasks

    def record(self, event: UsageEvent) -> None:
        """Schedule persistence of event; never blocks, never raises."""
        self.tasks.spawn(self.persist(event), name="usage_record")

    async def persist(self, event: UsageEvent) -> None:
        """Insert the usage row, then increment quota for known accounts."""
        try:
            async with self.session_factory() as session:
                session.add(
                    UsageLog(
                        user_id=event.account_id,
                        api_key_id=event.api_key_id,
                        language=event.language.value,
                        input_length=event.input_length,
                        output_length=event.output_length,
                        execution_time_ms=round(event.execution_time_ms),
                        formatter_used=event.formatter_used,
                        ip_address=event.ip_address,
                        user_agent=event.user_agent,
                    )
                )
                await session.commit()
            metrics.record_usage_write(success=True)
            logger.debug(
                "usage_recorded", account_id=event.account_id, language=event.language.value
            )
        except Exception as e:
            metrics.record_usage_write(success=False)
            logger.error(
                "usage_record_failed",
                account_id=event.account_id,
                api_key_id=event.api_key_id,
                error=str(e),
                error_type=type(e).__name__,
            )

        if event.account_id is None or event.quota_consumed:
            return

        try:
            async with self.session_factory() as session:
                matched = await QuotaLedger(session).increment(event.account_id)
            metrics.record_quota_increment(success=matched)
            if not matched:
                logger.warning("quota_increment_no_subscription", account_id=event.account_id)
        except Exception as e:
            metrics.record_quota_increment(success=False)
            logger.error(
                "quota_increment_failed",
                account_id=event.account_id,
                error=str(e),
                error_type=type(e).__name__,
            )


# Process-wide recorder
usage_recorder = UsageRecorder()
