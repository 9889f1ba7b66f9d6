"""
Auth Routes - Registration, login and self-service account management.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from speedformat.api.dependencies import get_current_identity
from speedformat.db.models import Account, Subscription
from speedformat.db.session import get_read_db, get_write_db
from speedformat.models.api import (
    AccountRole,
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    PlanTier,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    SubscriptionResponse,
    SubscriptionStatus,
    UsagePeriod,
    UsageStatsResponse,
    UserResponse,
    UserUpdateResponse,
)
from speedformat.models.domain import CallerIdentity
from speedformat.services.identity import IdentityService
from speedformat.services.plans import parse_plan
from speedformat.services.stats import UsageStatsService, parse_period
from speedformat.services.tokens import TokenService

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_response(account: Account, subscription: Subscription | None) -> UserResponse:
    return UserResponse(
        id=account.id,
        uuid=account.uuid,
        email=account.email,
        name=account.name,
        role=AccountRole(account.role),
        is_active=account.is_active,
        created_at=account.created_at,
        subscription=(
            SubscriptionResponse(
                plan_type=parse_plan(subscription.plan_type),
                status=SubscriptionStatus(subscription.status),
                monthly_limit=subscription.monthly_limit,
                current_usage=subscription.current_usage,
                reset_date=subscription.reset_date,
            )
            if subscription is not None
            else None
        ),
    )


def _auth_response(
    message: str, account: Account, subscription: Subscription | None
) -> AuthResponse:
    tokens = TokenService()
    plan = parse_plan(subscription.plan_type) if subscription else PlanTier.FREE
    return AuthResponse(
        message=message,
        user=_user_response(account, subscription),
        token=tokens.issue(account.id, account.uuid, account.email, plan.value),
        expires_in=tokens.expires_in,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_write_db),
) -> AuthResponse:
    """
    Create an account on the free plan and return a bearer token.

    Returns 409 if the email is already registered.
    """
    service = IdentityService(db)
    account, subscription = await service.register(
        email=request.email, password=request.password, name=request.name
    )
    return _auth_response("User registered successfully", account, subscription)


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_write_db),
) -> AuthResponse:
    """Exchange email and password for a bearer token."""
    service = IdentityService(db)
    account = await service.authenticate(request.email, request.password)
    subscription = await service.get_active_subscription(account.id)
    return _auth_response("Login successful", account, subscription)


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_read_db),
) -> ProfileResponse:
    """Account details, subscription and this month's usage."""
    service = IdentityService(db)
    account = await service.require_active_account(identity.account_id)
    subscription = await service.get_active_subscription(account.id)
    usage = await UsageStatsService(db).account_usage(account.id, UsagePeriod.MONTH)
    return ProfileResponse(user=_user_response(account, subscription), usage_stats=usage)


@router.patch("/profile", response_model=UserUpdateResponse)
async def update_profile(
    request: ProfileUpdateRequest,
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_write_db),
) -> UserUpdateResponse:
    service = IdentityService(db)
    account = await service.update_profile(
        identity.account_id, name=request.name, email=request.email
    )
    subscription = await service.get_active_subscription(account.id)
    return UserUpdateResponse(
        message="Profile updated successfully",
        user=_user_response(account, subscription),
    )


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_write_db),
) -> MessageResponse:
    """Existing tokens remain valid until they expire."""
    await IdentityService(db).change_password(
        identity.account_id, request.current_password, request.new_password
    )
    return MessageResponse(message="Password changed successfully")


@router.get("/usage", response_model=UsageStatsResponse)
async def get_usage(
    period: str = Query("month", description="Aggregation window: day or month"),
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_read_db),
) -> UsageStatsResponse:
    """Usage totals and language breakdown for the caller's account."""
    return await UsageStatsService(db).account_usage(identity.account_id, parse_period(period))


@router.delete("/account", response_model=MessageResponse)
async def delete_account(
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_write_db),
) -> MessageResponse:
    """
    Deactivate the caller's account.

    Usage history is kept; bearer tokens and API keys stop resolving on the
    next request.
    """
    await IdentityService(db).deactivate(identity.account_id)
    return MessageResponse(message="Account deactivated successfully")
