"""
Plan Tiers - Monthly and rate ceilings per subscription plan.

All ceilings come from Settings so deployments can tune them; the settings
validator guarantees they are monotonic in plan tier.
"""

from speedformat.config import settings
from speedformat.models.api import PlanTier
from speedformat.models.domain import CallerIdentity, PlanLimits

PLAN_ORDER: tuple[PlanTier, ...] = (PlanTier.FREE, PlanTier.BASIC, PlanTier.PRO, PlanTier.TEAM)


def monthly_limit(plan: PlanTier) -> int:
    """Monthly request ceiling for a plan."""
    return {
        PlanTier.FREE: settings.plan_limit_free,
        PlanTier.BASIC: settings.plan_limit_basic,
        PlanTier.PRO: settings.plan_limit_pro,
        PlanTier.TEAM: settings.plan_limit_team,
    }[plan]


def public_rate_limit(identity: CallerIdentity) -> int:
    """Per-window ceiling on the public endpoint: anonymous < free < any paid plan."""
    if identity.is_anonymous:
        return settings.public_rate_anonymous
    if identity.plan == PlanTier.FREE:
        return settings.public_rate_free
    return settings.public_rate_paid


def api_rate_limit(plan: PlanTier) -> int:
    """Per-window ceiling on the API-key endpoint."""
    return {
        PlanTier.FREE: settings.api_rate_free,
        PlanTier.BASIC: settings.api_rate_basic,
        PlanTier.PRO: settings.api_rate_pro,
        PlanTier.TEAM: settings.api_rate_team,
    }[plan]


def limits_for(plan: PlanTier) -> PlanLimits:
    """All ceilings for an authenticated account on the given plan."""
    return PlanLimits(
        plan=plan,
        monthly_limit=monthly_limit(plan),
        public_rate_limit=(
            settings.public_rate_free if plan == PlanTier.FREE else settings.public_rate_paid
        ),
        api_rate_limit=api_rate_limit(plan),
    )


def parse_plan(value: str) -> PlanTier:
    """Map a stored plan_type to a tier, falling back to the lowest tier."""
    try:
        return PlanTier(value)
    except ValueError:
        return PlanTier.FREE
