"""
Admin Routes - Service-wide statistics for admin accounts.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from speedformat.api.dependencies import require_capability
from speedformat.db.session import get_read_db
from speedformat.models.api import AdminStatsResponse
from speedformat.models.domain import CallerIdentity, Capability
from speedformat.services.stats import UsageStatsService

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/stats", response_model=AdminStatsResponse)
async def admin_stats(
    identity: CallerIdentity = Depends(require_capability(Capability.VIEW_ADMIN_STATS)),
    db: AsyncSession = Depends(get_read_db),
) -> AdminStatsResponse:
    """
    Totals plus a thirty-day daily breakdown.

    Requires a bearer token for an account with the admin role.
    """
    logger.info("admin_stats_requested", account_id=identity.account_id)
    return await UsageStatsService(db).admin_stats()
