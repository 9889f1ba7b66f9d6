"""
Tests for the Credential Resolver.

Covers precedence (API key over bearer over anonymous), rejection paths and
store failures surfacing as unavailability rather than authentication errors.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import jwt
import pytest
from sqlalchemy.exc import OperationalError

from speedformat.exceptions import (
    InvalidAPIKeyError,
    InvalidTokenError,
    MalformedAPIKeyError,
    MissingCredentialsError,
    StoreUnavailableError,
    TokenExpiredError,
    UnknownAccountError,
)
from speedformat.models.api import AccountRole, PlanTier
from speedformat.models.domain import AuthType, PresentedCredentials
from speedformat.services.api_key import ResolvedKey
from speedformat.services.credentials import CredentialResolver
from tests.factories import (
    create_mock_account,
    create_mock_api_key,
    create_mock_subscription,
    make_result,
)


def _resolved(
    key_active: bool = True,
    account_active: bool = True,
    plan: PlanTier | None = PlanTier.PRO,
) -> ResolvedKey:
    return ResolvedKey(
        api_key=create_mock_api_key(is_active=key_active),
        account=create_mock_account(is_active=account_active),
        subscription=create_mock_subscription(plan=plan) if plan else None,
    )


class TestResolvePrecedence:
    """Which credential wins when several are presented."""

    @pytest.mark.asyncio
    async def test_no_credentials_is_anonymous(self, db_session, fake_tasks):
        identity = await CredentialResolver(db_session, tasks=fake_tasks).resolve(
            PresentedCredentials()
        )

        assert identity.is_anonymous
        assert identity.account_id is None
        assert identity.plan_label == "anonymous"
        db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_api_key_wins_over_bearer(self, db_session, fake_tasks, valid_api_key):
        resolver = CredentialResolver(db_session, tasks=fake_tasks)

        with patch(
            "speedformat.services.credentials.APIKeyService.find_by_plaintext",
            new=AsyncMock(return_value=_resolved()),
        ):
            identity = await resolver.resolve(
                PresentedCredentials(api_key=valid_api_key, bearer_token="garbage")
            )

        assert identity.auth_type == AuthType.API_KEY
        assert identity.plan == PlanTier.PRO

    @pytest.mark.asyncio
    async def test_api_key_only_rejects_bearer(self, db_session, fake_tasks, bearer_token):
        with pytest.raises(MissingCredentialsError, match="API key required"):
            await CredentialResolver(db_session, tasks=fake_tasks).resolve(
                PresentedCredentials(bearer_token=bearer_token), api_key_only=True
            )

    @pytest.mark.asyncio
    async def test_api_key_only_rejects_anonymous(self, db_session, fake_tasks):
        with pytest.raises(MissingCredentialsError):
            await CredentialResolver(db_session, tasks=fake_tasks).resolve(
                PresentedCredentials(), api_key_only=True
            )


class TestResolveAPIKey:
    """Tests for CredentialResolver.resolve_api_key."""

    @pytest.mark.asyncio
    async def test_malformed_key_never_touches_store(self, db_session, fake_tasks):
        with pytest.raises(MalformedAPIKeyError):
            await CredentialResolver(db_session, tasks=fake_tasks).resolve_api_key("sf_short")

        db_session.execute.assert_not_awaited()
        fake_tasks.spawn.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_key(self, db_session, fake_tasks, valid_api_key):
        with pytest.raises(InvalidAPIKeyError):
            await CredentialResolver(db_session, tasks=fake_tasks).resolve_api_key(valid_api_key)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "resolved",
        [
            _resolved(key_active=False),
            _resolved(account_active=False),
            _resolved(plan=None),
        ],
        ids=["deactivated_key", "deactivated_owner", "no_subscription"],
    )
    async def test_unusable_key(self, db_session, fake_tasks, valid_api_key, resolved):
        with patch(
            "speedformat.services.credentials.APIKeyService.find_by_plaintext",
            new=AsyncMock(return_value=resolved),
        ):
            with pytest.raises(InvalidAPIKeyError):
                await CredentialResolver(db_session, tasks=fake_tasks).resolve_api_key(
                    valid_api_key
                )

        fake_tasks.spawn.assert_not_called()

    @pytest.mark.asyncio
    async def test_valid_key_identity_and_last_used_stamp(
        self, db_session, fake_tasks, valid_api_key
    ):
        with patch(
            "speedformat.services.credentials.APIKeyService.find_by_plaintext",
            new=AsyncMock(return_value=_resolved()),
        ):
            identity = await CredentialResolver(db_session, tasks=fake_tasks).resolve_api_key(
                valid_api_key
            )

        assert identity.account_id == 1
        assert identity.api_key_id == 7
        assert identity.api_key == valid_api_key
        assert identity.role == AccountRole.USER
        fake_tasks.spawn.assert_called_once()
        assert fake_tasks.spawn.call_args.kwargs["name"] == "api_key_last_used"

    @pytest.mark.asyncio
    async def test_store_timeout_is_unavailable(self, db_session, fake_tasks, valid_api_key):
        async def _hang(*args, **kwargs):
            await asyncio.sleep(10)

        db_session.execute = AsyncMock(side_effect=_hang)

        with patch("speedformat.db.session.settings.store_timeout_seconds", 0.01):
            with pytest.raises(StoreUnavailableError):
                await CredentialResolver(db_session, tasks=fake_tasks).resolve_api_key(
                    valid_api_key
                )

    @pytest.mark.asyncio
    async def test_store_connection_error_is_unavailable(
        self, db_session, fake_tasks, valid_api_key
    ):
        db_session.execute = AsyncMock(
            side_effect=OperationalError("select", {}, ConnectionRefusedError())
        )

        with pytest.raises(StoreUnavailableError):
            await CredentialResolver(db_session, tasks=fake_tasks).resolve_api_key(valid_api_key)


class TestResolveBearer:
    """Tests for CredentialResolver.resolve_bearer."""

    @pytest.mark.asyncio
    async def test_plan_comes_from_live_subscription(
        self, db_session, fake_tasks, token_service
    ):
        # Token claims "free"; the store says "pro"
        token = token_service.issue(1, create_mock_account().uuid, "dev@example.com", "free")
        db_session.execute = AsyncMock(
            return_value=make_result(
                first=(create_mock_account(), create_mock_subscription(plan=PlanTier.PRO))
            )
        )

        identity = await CredentialResolver(db_session, tasks=fake_tasks).resolve_bearer(token)

        assert identity.auth_type == AuthType.BEARER
        assert identity.plan == PlanTier.PRO
        assert identity.api_key is None

    @pytest.mark.asyncio
    async def test_no_subscription_defaults_to_free(self, db_session, fake_tasks, bearer_token):
        db_session.execute = AsyncMock(
            return_value=make_result(first=(create_mock_account(), None))
        )

        identity = await CredentialResolver(db_session, tasks=fake_tasks).resolve_bearer(
            bearer_token
        )

        assert identity.plan == PlanTier.FREE

    @pytest.mark.asyncio
    async def test_deleted_account(self, db_session, fake_tasks, bearer_token):
        with pytest.raises(UnknownAccountError):
            await CredentialResolver(db_session, tasks=fake_tasks).resolve_bearer(bearer_token)

    @pytest.mark.asyncio
    async def test_deactivated_account_within_expiry(self, db_session, fake_tasks, bearer_token):
        db_session.execute = AsyncMock(
            return_value=make_result(first=(create_mock_account(is_active=False), None))
        )

        with pytest.raises(UnknownAccountError):
            await CredentialResolver(db_session, tasks=fake_tasks).resolve_bearer(bearer_token)

    @pytest.mark.asyncio
    async def test_expired_token(self, db_session, fake_tasks, token_service):
        past = datetime.now(UTC) - timedelta(days=30)
        token = jwt.encode(
            {"sub": "1", "iat": past, "exp": past + timedelta(days=7)},
            token_service.secret,
            algorithm="HS256",
        )

        with pytest.raises(TokenExpiredError):
            await CredentialResolver(db_session, tasks=fake_tasks).resolve_bearer(token)

        db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tampered_token(self, db_session, fake_tasks, bearer_token):
        with pytest.raises(InvalidTokenError):
            await CredentialResolver(db_session, tasks=fake_tasks).resolve_bearer(
                bearer_token[:-4] + "AAAA"
            )
