"""
Bearer Tokens - Signing and verification of account session tokens.

A token is a signed pointer to an account, nothing more. Plan and email
claims are informational; the resolver re-reads the account on every call.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from structlog import get_logger

from speedformat.config import settings
from speedformat.exceptions import InvalidTokenError, TokenExpiredError

logger = get_logger(__name__)


@dataclass(frozen=True)
class TokenClaims:
    """Verified token payload."""

    account_id: int
    account_uuid: str
    email: str
    plan: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """HS256 token issuer and verifier."""

    def __init__(
        self,
        secret: str | None = None,
        algorithm: str | None = None,
        expire_days: int | None = None,
    ) -> None:
        self.secret = secret or settings.JWT_SECRET
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expire_days = expire_days if expire_days is not None else settings.jwt_expire_days

    @property
    def expires_in(self) -> str:
        """Human-readable lifetime returned to clients."""
        return f"{self.expire_days} days"

    def issue(self, account_id: int, account_uuid: UUID, email: str, plan: str) -> str:
        """Sign a token for an account."""
        now = datetime.now(UTC)
        payload = {
            "sub": str(account_id),
            "uuid": str(account_uuid),
            "email": email,
            "plan": plan,
            "iat": now,
            "exp": now + timedelta(days=self.expire_days),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Verify signature and expiry.

        Raises:
            TokenExpiredError: token is past its expiry
            InvalidTokenError: bad signature, malformed token or missing claims
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("bearer_token_expired")
            raise TokenExpiredError() from None
        except jwt.InvalidTokenError as e:
            logger.warning("bearer_token_invalid", error=str(e))
            raise InvalidTokenError() from None

        try:
            account_id = int(payload["sub"])
        except (TypeError, ValueError):
            logger.warning("bearer_token_bad_subject")
            raise InvalidTokenError() from None

        return TokenClaims(
            account_id=account_id,
            account_uuid=str(payload.get("uuid", "")),
            email=str(payload.get("email", "")),
            plan=str(payload.get("plan", "")),
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        )
