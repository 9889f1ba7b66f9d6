"""
Credential Resolver - Presented credentials to a CallerIdentity.

Precedence: API key, then bearer token, then anonymous. Every identity store
call runs under the store timeout so a slow database surfaces as
StoreUnavailableError rather than an authentication failure.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from speedformat.db.session import bounded, get_write_session
from speedformat.exceptions import (
    InvalidAPIKeyError,
    MalformedAPIKeyError,
    MissingCredentialsError,
    UnknownAccountError,
)
from speedformat.models.api import AccountRole, PlanTier
from speedformat.models.domain import AuthType, CallerIdentity, PresentedCredentials
from speedformat.services.api_key import APIKeyService, is_valid_key_format
from speedformat.services.background import BackgroundTasks, background_tasks
from speedformat.services.identity import IdentityService
from speedformat.services.plans import parse_plan
from speedformat.services.tokens import TokenService

logger = get_logger(__name__)


async def stamp_last_used(key_id: int) -> None:
    """Record key usage on a dedicated session; failures are logged only."""
    try:
        async with get_write_session() as session:
            await APIKeyService(session).touch_last_used(key_id)
    except Exception as e:
        logger.warning("api_key_last_used_stamp_failed", key_id=key_id, error=str(e))


class CredentialResolver:
    """Validates bearer tokens and API keys against the identity store."""

    def __init__(
        self,
        db: AsyncSession,
        tokens: TokenService | None = None,
        tasks: BackgroundTasks = background_tasks,
    ) -> None:
        self.db = db
        self.tokens = tokens or TokenService()
        self.tasks = tasks

    async def resolve(
        self, credentials: PresentedCredentials, api_key_only: bool = False
    ) -> CallerIdentity:
        """
        Resolve presented credentials.

        Args:
            credentials: what the request carried
            api_key_only: reject callers without an API key (bearer and anonymous)

        Raises:
            MalformedAPIKeyError, InvalidAPIKeyError, InvalidTokenError,
            TokenExpiredError, UnknownAccountError, MissingCredentialsError,
            StoreUnavailableError
        """
        if credentials.api_key:
            return await self.resolve_api_key(credentials.api_key)

        if api_key_only:
            raise MissingCredentialsError("API key required")

        if credentials.bearer_token:
            return await self.resolve_bearer(credentials.bearer_token)

        return CallerIdentity.anonymous()

    async def resolve_api_key(self, key: str) -> CallerIdentity:
        if not is_valid_key_format(key):
            logger.warning("api_key_invalid_format", prefix=key[:3], length=len(key))
            raise MalformedAPIKeyError()

        resolved = await bounded("api_key_lookup", APIKeyService(self.db).find_by_plaintext(key))

        if resolved is None:
            logger.warning("api_key_not_found", prefix=key[:10])
            raise InvalidAPIKeyError()
        if not resolved.api_key.is_active:
            logger.warning("api_key_inactive", key_id=resolved.api_key.id)
            raise InvalidAPIKeyError()
        if not resolved.account.is_active:
            logger.warning(
                "api_key_owner_inactive",
                key_id=resolved.api_key.id,
                account_id=resolved.account.id,
            )
            raise InvalidAPIKeyError()
        if resolved.subscription is None:
            logger.warning(
                "api_key_owner_no_subscription",
                key_id=resolved.api_key.id,
                account_id=resolved.account.id,
            )
            raise InvalidAPIKeyError("No active subscription for this API key")

        self.tasks.spawn(stamp_last_used(resolved.api_key.id), name="api_key_last_used")

        return CallerIdentity(
            account_id=resolved.account.id,
            plan=parse_plan(resolved.subscription.plan_type),
            auth_type=AuthType.API_KEY,
            api_key_id=resolved.api_key.id,
            api_key=key,
            role=AccountRole(resolved.account.role),
        )

    async def resolve_bearer(self, token: str) -> CallerIdentity:
        claims = self.tokens.verify(token)

        row = await bounded(
            "account_lookup",
            IdentityService(self.db).get_account_with_subscription(claims.account_id),
        )
        if row is None or not row[0].is_active:
            logger.warning("bearer_account_unavailable", account_id=claims.account_id)
            raise UnknownAccountError(claims.account_id)

        account, subscription = row
        # Plan always comes from the live subscription, never the token
        plan = parse_plan(subscription.plan_type) if subscription else PlanTier.FREE

        return CallerIdentity(
            account_id=account.id,
            plan=plan,
            auth_type=AuthType.BEARER,
            role=AccountRole(account.role),
        )
