"""
Format Routes - Public and API-key formatting endpoints.

Both endpoints drive the same FormatPipeline. The usage record (and the
quota increment it carries) is handed to FastAPI background tasks, which
run after the response has been sent.
"""

import math

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response

from speedformat.api.dependencies import (
    get_client_ip,
    get_format_pipeline,
    get_presented_credentials,
    get_usage_recorder,
)
from speedformat.models.api import FormatRequest, FormatResponse
from speedformat.models.domain import PresentedCredentials
from speedformat.services.pipeline import Endpoint, FormatCall, FormatOutcome, FormatPipeline
from speedformat.services.usage import UsageRecorder

router = APIRouter(tags=["format"])


def _set_rate_headers(response: Response, outcome: FormatOutcome) -> None:
    response.headers["X-RateLimit-Limit"] = str(outcome.rate.limit)
    response.headers["X-RateLimit-Remaining"] = str(outcome.rate.remaining)
    response.headers["X-RateLimit-Reset"] = str(math.ceil(outcome.rate.retry_after_seconds))


async def _format(
    endpoint: Endpoint,
    body: FormatRequest,
    request: Request,
    response: Response,
    background: BackgroundTasks,
    credentials: PresentedCredentials,
    pipeline: FormatPipeline,
    recorder: UsageRecorder,
) -> FormatResponse:
    outcome = await pipeline.run(
        endpoint,
        FormatCall(
            code=body.code,
            language=body.language,
            credentials=credentials,
            client_ip=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        ),
    )

    background.add_task(recorder.record, outcome.usage_event)
    _set_rate_headers(response, outcome)

    return FormatResponse(
        formatted_code=outcome.result.formatted_code,
        execution_time_ms=outcome.result.execution_time_ms,
        formatter_used=outcome.result.formatter_used,
        status="success",
        input_length=len(body.code),
        output_length=outcome.result.output_length,
        user_plan=outcome.identity.plan_label,
    )


@router.post("/format", response_model=FormatResponse)
async def format_code(
    body: FormatRequest,
    request: Request,
    response: Response,
    background: BackgroundTasks,
    credentials: PresentedCredentials = Depends(get_presented_credentials),
    pipeline: FormatPipeline = Depends(get_format_pipeline),
    recorder: UsageRecorder = Depends(get_usage_recorder),
) -> FormatResponse:
    """
    Format code. Authentication is optional.

    Anonymous callers are rate limited per IP and never metered against a
    monthly quota. Bearer or API key callers get their plan's ceilings.
    """
    return await _format(
        Endpoint.PUBLIC, body, request, response, background, credentials, pipeline, recorder
    )


@router.post("/api/v1/format", response_model=FormatResponse)
async def format_code_api(
    body: FormatRequest,
    request: Request,
    response: Response,
    background: BackgroundTasks,
    credentials: PresentedCredentials = Depends(get_presented_credentials),
    pipeline: FormatPipeline = Depends(get_format_pipeline),
    recorder: UsageRecorder = Depends(get_usage_recorder),
) -> FormatResponse:
    """
    Format code with an API key (X-API-Key header or api_key query parameter).

    Uses a one-minute window with per-plan ceilings.
    """
    return await _format(
        Endpoint.API, body, request, response, background, credentials, pipeline, recorder
    )
