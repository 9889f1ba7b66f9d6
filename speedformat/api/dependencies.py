"""
FastAPI Dependencies - Credentials, authentication and service wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

from collections.abc import Awaitable, Callable

from fastapi import Depends, Header, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from speedformat.config import settings
from speedformat.db.session import get_write_db
from speedformat.exceptions import MissingCredentialsError, PermissionDeniedError
from speedformat.models.domain import CallerIdentity, Capability, PresentedCredentials
from speedformat.services.credentials import CredentialResolver
from speedformat.services.formatter import formatting_engine
from speedformat.services.pipeline import FormatPipeline
from speedformat.services.quota import QuotaLedger
from speedformat.services.rate_limit import rate_limiter
from speedformat.services.usage import UsageRecorder, usage_recorder

logger = get_logger(__name__)

# Bearer token scheme; missing headers are handled by the resolver
bearer_scheme = HTTPBearer(auto_error=False)


def get_client_ip(request: Request) -> str:
    """
    Caller IP used for rate limit keys.

    X-Forwarded-For is only honoured when the connecting peer is listed in
    TRUSTED_PROXY_IPS.
    """
    peer = request.client.host if request.client and request.client.host else None
    if peer is not None and peer in settings.trusted_proxies:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    return peer or "unknown"


async def get_presented_credentials(
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    api_key: str | None = Query(None, description="API key (alternative to X-API-Key)"),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> PresentedCredentials:
    """Collect whatever the request carried. The header wins over the query parameter."""
    return PresentedCredentials(
        api_key=x_api_key or api_key or None,
        bearer_token=credentials.credentials if credentials else None,
    )


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_write_db),
) -> CallerIdentity:
    """
    Bearer-authenticated account for account-management routes.

    The account is re-read on every call; a deactivated account is rejected
    even while its token is still within expiry.
    """
    if credentials is None:
        raise MissingCredentialsError("Please provide a valid Bearer token")
    return await CredentialResolver(db).resolve_bearer(credentials.credentials)


def require_capability(
    capability: Capability,
) -> Callable[..., Awaitable[CallerIdentity]]:
    """
    Dependency factory that checks a role capability.

    Usage:
        @router.get("/admin/stats")
        async def stats(
            identity: CallerIdentity = Depends(require_capability(Capability.VIEW_ADMIN_STATS)),
        ): ...
    """

    async def check_capability(
        identity: CallerIdentity = Depends(get_current_identity),
    ) -> CallerIdentity:
        if not identity.can(capability):
            logger.warning(
                "capability_denied",
                account_id=identity.account_id,
                capability=capability.value,
            )
            raise PermissionDeniedError(capability.value)
        return identity

    return check_capability


def get_format_pipeline(db: AsyncSession = Depends(get_write_db)) -> FormatPipeline:
    """Pipeline bound to this request's session and the process-wide limiter."""
    return FormatPipeline(
        resolver=CredentialResolver(db),
        ledger=QuotaLedger(db),
        limiter=rate_limiter,
        engine=formatting_engine,
    )


def get_usage_recorder() -> UsageRecorder:
    return usage_recorder
