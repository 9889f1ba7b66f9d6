"""
Format Pipeline - The linear authorization and metering path of a format call.

States per request:

    RECEIVED -> RATE_CHECKED -> IDENTITY_RESOLVED -> QUOTA_CHECKED
             -> DELEGATED -> (response sent) -> RECORDED

Early exits raise immediately: THROTTLED (coarse IP guard, or the plan-aware
limiter once identity is known), UNAUTHENTICATED, QUOTA_EXCEEDED. A request
that exits early never reaches DELEGATED and never produces a UsageEvent, so
nothing is recorded or incremented for it. No state is revisited and nothing
is retried.

Both HTTP endpoints run this same pipeline; they differ only in the
Endpoint profile (window, ceilings, whether an API key is mandatory).
"""

from dataclasses import dataclass
from enum import Enum

from structlog import get_logger

from speedformat.config import settings
from speedformat.db.session import bounded
from speedformat.exceptions import (
    ErrorKind,
    FormatterServiceError,
    QuotaExceededError,
    RateLimitExceededError,
)
from speedformat.models.api import Language
from speedformat.models.domain import (
    CallerIdentity,
    FormatResult,
    PresentedCredentials,
    QuotaDecision,
    RateDecision,
    UsageEvent,
)
from speedformat.observability.metrics import metrics
from speedformat.observability.tracing import (
    add_span_attributes,
    caller_span_attributes,
    get_tracer,
    set_span_error,
)
from speedformat.services.credentials import CredentialResolver
from speedformat.services.formatter import FormattingEngine
from speedformat.services.plans import api_rate_limit, public_rate_limit
from speedformat.services.quota import QuotaLedger
from speedformat.services.rate_limit import RateLimitBackend, rate_key

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class Endpoint(str, Enum):
    """Which format endpoint a request arrived on."""

    PUBLIC = "public"  # POST /format
    API = "api"  # POST /api/v1/format


class PipelineState(str, Enum):
    RECEIVED = "received"
    RATE_CHECKED = "rate_checked"
    IDENTITY_RESOLVED = "identity_resolved"
    QUOTA_CHECKED = "quota_checked"
    DELEGATED = "delegated"
    THROTTLED = "throttled"
    UNAUTHENTICATED = "unauthenticated"
    QUOTA_EXCEEDED = "quota_exceeded"
    FAILED = "failed"


@dataclass(frozen=True)
class FormatCall:
    """Everything the pipeline needs from the inbound request."""

    code: str
    language: Language
    credentials: PresentedCredentials
    client_ip: str
    user_agent: str | None


@dataclass(frozen=True)
class FormatOutcome:
    """A successfully delegated request."""

    identity: CallerIdentity
    result: FormatResult
    rate: RateDecision
    usage_event: UsageEvent


def window_for(endpoint: Endpoint) -> int:
    if endpoint == Endpoint.API:
        return settings.api_rate_window_seconds
    return settings.public_rate_window_seconds


def ceiling_for(endpoint: Endpoint, identity: CallerIdentity) -> int:
    if endpoint == Endpoint.API:
        return api_rate_limit(identity.plan)
    return public_rate_limit(identity)


def _terminal_state(error: FormatterServiceError) -> PipelineState:
    if isinstance(error, RateLimitExceededError):
        return PipelineState.THROTTLED
    if isinstance(error, QuotaExceededError):
        return PipelineState.QUOTA_EXCEEDED
    if error.status_code == 401 or error.kind == ErrorKind.UNAUTHENTICATED:
        return PipelineState.UNAUTHENTICATED
    return PipelineState.FAILED


class FormatPipeline:
    """Composes the rate limiter, resolver, quota ledger and formatting engine."""

    def __init__(
        self,
        resolver: CredentialResolver,
        ledger: QuotaLedger,
        limiter: RateLimitBackend,
        engine: FormattingEngine,
    ) -> None:
        self.resolver = resolver
        self.ledger = ledger
        self.limiter = limiter
        self.engine = engine

    async def run(self, endpoint: Endpoint, call: FormatCall) -> FormatOutcome:
        """
        Drive one request through the pipeline.

        Raises:
            RateLimitExceededError: THROTTLED
            MalformedAPIKeyError, InvalidAPIKeyError, InvalidTokenError,
            TokenExpiredError, UnknownAccountError, MissingCredentialsError: UNAUTHENTICATED
            QuotaExceededError: QUOTA_EXCEEDED
            StoreUnavailableError, FormattingFailedError, FormatterUnavailableError
        """
        state = PipelineState.RECEIVED
        identity: CallerIdentity | None = None

        with tracer.start_as_current_span("format_pipeline") as span:
            add_span_attributes(
                span,
                endpoint=endpoint.value,
                language=call.language.value,
                input_length=len(call.code),
            )
            try:
                await self._guard_ip(endpoint, call.client_ip)
                state = PipelineState.RATE_CHECKED

                identity = await self.resolver.resolve(
                    call.credentials, api_key_only=endpoint == Endpoint.API
                )
                state = PipelineState.IDENTITY_RESOLVED
                add_span_attributes(span, **caller_span_attributes(identity))

                rate = await self._admit(endpoint, identity, call.client_ip)
                quota = await self._check_quota(identity)
                state = PipelineState.QUOTA_CHECKED

                result = await self.engine.format(call.code, call.language)
                state = PipelineState.DELEGATED
            except FormatterServiceError as e:
                terminal = _terminal_state(e)
                plan = identity.plan_label if identity else "unknown"
                metrics.record_pipeline_outcome(endpoint.value, terminal.value, plan)
                set_span_error(span, e)
                logger.info(
                    "format_pipeline_exit",
                    endpoint=endpoint.value,
                    reached=state.value,
                    outcome=terminal.value,
                    error_kind=e.kind.value,
                    plan=plan,
                )
                raise

            metrics.record_pipeline_outcome(endpoint.value, state.value, identity.plan_label)
            add_span_attributes(
                span,
                formatter=result.formatter_used,
                execution_time_ms=result.execution_time_ms,
            )

        logger.info(
            "code_formatted",
            endpoint=endpoint.value,
            language=call.language.value,
            formatter=result.formatter_used,
            input_length=len(call.code),
            output_length=result.output_length,
            execution_time_ms=result.execution_time_ms,
            account_id=identity.account_id,
            plan=identity.plan_label,
        )

        return FormatOutcome(
            identity=identity,
            result=result,
            rate=rate,
            usage_event=UsageEvent(
                account_id=identity.account_id,
                api_key_id=identity.api_key_id,
                language=call.language,
                input_length=len(call.code),
                output_length=result.output_length,
                execution_time_ms=result.execution_time_ms,
                formatter_used=result.formatter_used,
                ip_address=call.client_ip or None,
                user_agent=call.user_agent,
                quota_consumed=quota.consumed if quota else False,
            ),
        )

    async def _guard_ip(self, endpoint: Endpoint, client_ip: str) -> None:
        """Coarse per-IP ceiling applied before any store access."""
        decision = await self.limiter.admit(
            f"guard:ip:{client_ip}",
            settings.ip_guard_window_seconds,
            settings.ip_guard_ceiling,
        )
        if not decision.admitted:
            metrics.rate_limit_rejections_total.labels(endpoint=f"{endpoint.value}_guard").inc()
            raise RateLimitExceededError(
                decision.current, decision.limit, decision.retry_after_seconds
            )

    async def _admit(
        self, endpoint: Endpoint, identity: CallerIdentity, client_ip: str
    ) -> RateDecision:
        """Plan-aware window: key is API key, else account id, else IP."""
        decision = await self.limiter.admit(
            rate_key(endpoint.value, identity, client_ip),
            window_for(endpoint),
            ceiling_for(endpoint, identity),
        )
        if not decision.admitted:
            metrics.rate_limit_rejections_total.labels(endpoint=endpoint.value).inc()
            raise RateLimitExceededError(
                decision.current, decision.limit, decision.retry_after_seconds
            )
        return decision

    async def _check_quota(self, identity: CallerIdentity) -> QuotaDecision | None:
        """Anonymous callers are not metered."""
        if identity.account_id is None:
            return None

        decision = await bounded(
            "quota_check", self.ledger.check_and_consume(identity.account_id)
        )
        if not decision.allowed:
            metrics.quota_denials_total.labels(plan=identity.plan_label).inc()
            logger.warning(
                "quota_exceeded",
                account_id=identity.account_id,
                current_usage=decision.current_usage,
                monthly_limit=decision.monthly_limit,
            )
            raise QuotaExceededError(decision.current_usage, decision.monthly_limit)
        return decision
