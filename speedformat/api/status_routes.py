"""
Status Routes - Health check and formatter benchmark.

Public endpoints (no auth).
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from speedformat.config import settings
from speedformat.db.session import bounded, get_read_db
from speedformat.exceptions import StoreUnavailableError
from speedformat.models.api import BenchmarkResponse, HealthResponse, Language
from speedformat.services.formatter import formatting_engine

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

BENCHMARK_SAMPLE = (
    'const messyCode={name:"test",value:123,items:[1,2,3,4,5],'
    "processItems:function(){return this.items.map(x=>x*2).filter(x=>x>4);}};"
)


@router.get("/health", response_model=HealthResponse)
async def health_check(
    response: Response,
    db: AsyncSession = Depends(get_read_db),
) -> HealthResponse:
    """
    Service health with database connectivity.

    Returns 503 with status "unhealthy" when the database does not answer
    within the store timeout.
    """
    database = "connected"
    try:
        await bounded("health_check", db.execute(text("SELECT 1")))
    except StoreUnavailableError:
        database = "disconnected"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning("health_check_database_unavailable")

    return HealthResponse(
        status="healthy" if database == "connected" else "unhealthy",
        service=settings.api_title,
        version=settings.api_version,
        database=database,
        timestamp=datetime.now(UTC).isoformat(),
    )


@router.get("/benchmark", response_model=BenchmarkResponse)
async def benchmark() -> BenchmarkResponse:
    """Format a fixed JavaScript sample repeatedly and report timings."""
    iterations = settings.benchmark_iterations
    times: list[float] = []
    for _ in range(iterations):
        result = await formatting_engine.format(BENCHMARK_SAMPLE, Language.JAVASCRIPT)
        times.append(result.execution_time_ms)

    average = sum(times) / len(times)
    return BenchmarkResponse(
        iterations=iterations,
        average_time_ms=round(average, 2),
        min_time_ms=min(times),
        max_time_ms=max(times),
        sample_code_length=len(BENCHMARK_SAMPLE),
        throughput_chars_per_ms=round(len(BENCHMARK_SAMPLE) / average, 2) if average else 0.0,
    )
