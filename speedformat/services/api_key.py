"""
API Key Service - Generation, lookup and owner-scoped lifecycle of API keys.

NO DICTIONARIES - All data uses typed models/dataclasses.

Key format: 3-character prefix followed by 64 lowercase hex digits. Only the
SHA-256 digest of a key is stored, so lookups are a single indexed equality.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from speedformat.config import settings
from speedformat.db.models import Account, APIKey, Subscription
from speedformat.exceptions import APIKeyLimitReachedError, APIKeyNotFoundError
from speedformat.models.api import SubscriptionStatus
from speedformat.models.domain import GeneratedAPIKey

logger = get_logger(__name__)

KEY_BODY_LENGTH = 64
_HEX_DIGITS = frozenset("0123456789abcdef")
DISPLAY_PREFIX_LENGTH = 10


def is_valid_key_format(key: str, prefix: str | None = None) -> bool:
    """
    Pure format check: prefix + 64 lowercase hex digits.

    Runs before any store access so malformed keys cost nothing.
    """
    prefix = prefix or settings.api_key_prefix
    if len(key) != len(prefix) + KEY_BODY_LENGTH or not key.startswith(prefix):
        return False
    return all(c in _HEX_DIGITS for c in key[len(prefix) :])


def hash_api_key(key: str) -> str:
    """SHA-256 hex digest used as the stored lookup value."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ResolvedKey:
    """An API key row joined with its owner and the owner's active subscription."""

    api_key: APIKey
    account: Account
    subscription: Subscription | None


class APIKeyService:
    """Service for API key management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def generate_api_key(self) -> tuple[str, str, str]:
        """
        Generate a new API key.

        Returns:
            tuple: (plaintext_key, key_hash, display_prefix)
        """
        plaintext_key = f"{settings.api_key_prefix}{secrets.token_hex(KEY_BODY_LENGTH // 2)}"
        return plaintext_key, hash_api_key(plaintext_key), plaintext_key[:DISPLAY_PREFIX_LENGTH]

    async def count_active_keys(self, account_id: int) -> int:
        stmt = select(func.count(APIKey.id)).where(
            APIKey.user_id == account_id, APIKey.is_active.is_(True)
        )
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def create_api_key(self, account_id: int, key_name: str) -> GeneratedAPIKey:
        """
        Create a new API key for an account.

        Returns:
            GeneratedAPIKey with plaintext key (shown once!)

        Raises:
            APIKeyLimitReachedError if the account already has the maximum live keys
        """
        active = await self.count_active_keys(account_id)
        if active >= settings.max_api_keys_per_account:
            logger.warning(
                "api_key_limit_reached",
                account_id=account_id,
                active_keys=active,
                limit=settings.max_api_keys_per_account,
            )
            raise APIKeyLimitReachedError(settings.max_api_keys_per_account)

        plaintext_key, key_hash, key_prefix = self.generate_api_key()

        api_key = APIKey(
            user_id=account_id,
            key_name=key_name,
            key_hash=key_hash,
            key_prefix=key_prefix,
            is_active=True,
        )
        self.db.add(api_key)
        await self.db.commit()
        await self.db.refresh(api_key)

        logger.info("api_key_created", key_id=api_key.id, account_id=account_id)

        return GeneratedAPIKey(
            key_id=api_key.id,
            plaintext_key=plaintext_key,
            key_prefix=key_prefix,
            key_name=key_name,
            created_at=api_key.created_at,
        )

    async def find_by_plaintext(self, plaintext_key: str) -> ResolvedKey | None:
        """
        Look up a key by digest, joined with owner and active subscription.

        Callers must run is_valid_key_format first.
        """
        stmt = (
            select(APIKey, Account, Subscription)
            .join(Account, Account.id == APIKey.user_id)
            .outerjoin(
                Subscription,
                and_(
                    Subscription.user_id == Account.id,
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                ),
            )
            .where(APIKey.key_hash == hash_api_key(plaintext_key))
        )
        result = await self.db.execute(stmt)
        row = result.first()
        if row is None:
            return None
        api_key, account, subscription = row
        return ResolvedKey(api_key=api_key, account=account, subscription=subscription)

    async def touch_last_used(self, key_id: int) -> None:
        """Stamp last_used_at on a key."""
        stmt = update(APIKey).where(APIKey.id == key_id).values(last_used_at=datetime.now(UTC))
        await self.db.execute(stmt)
        await self.db.commit()

    async def list_api_keys(self, account_id: int) -> list[APIKey]:
        """List an account's keys, newest first."""
        stmt = (
            select(APIKey)
            .where(APIKey.user_id == account_id)
            .order_by(APIKey.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_owned_key(self, account_id: int, key_id: int) -> APIKey:
        """
        Fetch a key owned by the account.

        Raises:
            APIKeyNotFoundError if missing or owned by someone else
        """
        stmt = select(APIKey).where(APIKey.id == key_id, APIKey.user_id == account_id)
        result = await self.db.execute(stmt)
        api_key = result.scalar_one_or_none()
        if api_key is None:
            logger.warning("api_key_not_found", key_id=key_id, account_id=account_id)
            raise APIKeyNotFoundError(key_id)
        return api_key

    async def rename_api_key(self, account_id: int, key_id: int, key_name: str) -> APIKey:
        api_key = await self.get_owned_key(account_id, key_id)
        api_key.key_name = key_name
        await self.db.commit()
        await self.db.refresh(api_key)
        logger.info("api_key_renamed", key_id=key_id, account_id=account_id)
        return api_key

    async def deactivate_api_key(self, account_id: int, key_id: int) -> APIKey:
        """Deactivate a key; it stops resolving immediately."""
        api_key = await self.get_owned_key(account_id, key_id)
        api_key.is_active = False
        await self.db.commit()
        await self.db.refresh(api_key)
        logger.info("api_key_deactivated", key_id=key_id, account_id=account_id)
        return api_key

    async def delete_api_key(self, account_id: int, key_id: int) -> None:
        """Delete a key. Usage rows keep their history with api_key_id set to NULL."""
        await self.get_owned_key(account_id, key_id)
        await self.db.execute(
            delete(APIKey).where(APIKey.id == key_id, APIKey.user_id == account_id)
        )
        await self.db.commit()
        logger.info("api_key_deleted", key_id=key_id, account_id=account_id)
