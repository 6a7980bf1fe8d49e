"""
Subscription management API endpoints.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal

from crm_billing.core.database import get_db
from crm_billing.core.auth import get_current_caller, require_roles
from crm_billing.services.access import CallerContext, Role
from crm_billing.services.subscription import (
    get_subscription,
    create_subscription,
    update_subscription,
    cancel_subscription,
    renew_subscription,
    list_subscriptions,
    get_subscription_history,
    get_subscription_stats,
    SubscriptionFilters,
)

router = APIRouter()


# Request Models
class CreateSubscriptionRequest(BaseModel):
    client_id: int
    plan_id: int
    num_users: int = Field(..., ge=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    discount: Optional[Decimal] = None
    payment_status: Optional[str] = None
    subscription_status: Optional[str] = None
    auto_renew: bool = False
    trial_ends_at: Optional[date] = None
    remarks: Optional[str] = None


class UpdateSubscriptionRequest(BaseModel):
    plan_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    num_users: Optional[int] = Field(None, ge=1)
    discount: Optional[Decimal] = None
    payment_status: Optional[str] = None
    subscription_status: Optional[str] = None
    auto_renew: Optional[bool] = None
    trial_ends_at: Optional[date] = None
    remarks: Optional[str] = None


class CancelSubscriptionRequest(BaseModel):
    reason: Optional[str] = None


class RenewSubscriptionRequest(BaseModel):
    discount: Optional[Decimal] = None


# Response Models
class SubscriptionResponse(BaseModel):
    id: int
    client_id: int
    plan_id: int
    start_date: date
    end_date: date
    trial_ends_at: Optional[date]
    billing_cycle: str
    billing_months: int
    num_users: int
    amount_paid: Decimal
    discount: Decimal
    final_amount: Decimal
    payment_status: str
    subscription_status: str
    auto_renew: bool
    last_payment_at: Optional[datetime]
    next_payment_date: Optional[date]
    cancelled_at: Optional[datetime]
    cancelled_reason: Optional[str]
    remarks: Optional[str]
    created_by: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class SubscriptionListResponse(BaseModel):
    items: List[SubscriptionResponse]
    total: int
    limit: int
    offset: int


class HistoryItemResponse(BaseModel):
    id: int
    user_id: Optional[int]
    action: str
    old_value: Optional[dict]
    new_value: Optional[dict]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class SubscriptionStatsResponse(BaseModel):
    total: int
    active: int
    expired: int
    cancelled: int
    trial: int
    payments: dict[str, int]
    revenue: dict[str, Decimal]
    expiring_in_7_days: int
    expiring_in_30_days: int


@router.get("/stats", response_model=SubscriptionStatsResponse)
async def subscription_stats(
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    """Counts and revenue over the subscriptions visible to the caller."""
    return SubscriptionStatsResponse(**get_subscription_stats(db, caller).to_dict())


@router.get("/", response_model=SubscriptionListResponse)
async def list_all_subscriptions(
    subscription_status: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None),
    plan_id: Optional[int] = Query(None),
    billing_cycle: Optional[str] = Query(None),
    start_date_from: Optional[date] = Query(None),
    end_date_to: Optional[date] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    """List subscriptions, newest first."""
    filters = SubscriptionFilters(
        subscription_status=subscription_status,
        payment_status=payment_status,
        client_id=client_id,
        plan_id=plan_id,
        billing_cycle=billing_cycle,
        start_date_from=start_date_from,
        end_date_to=end_date_to,
    )
    page = list_subscriptions(db, caller, filters, limit=limit, offset=offset)
    return SubscriptionListResponse(
        items=[SubscriptionResponse.model_validate(row) for row in page.rows],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription_detail(
    subscription_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    return get_subscription(db, caller, subscription_id)


@router.get("/{subscription_id}/history", response_model=List[HistoryItemResponse])
async def subscription_history(
    subscription_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    """Audit trail of a subscription, newest first."""
    return get_subscription_history(db, caller, subscription_id)


@router.post("/", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_new_subscription(
    request: CreateSubscriptionRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_roles(*Role.WRITERS)),
):
    """Create a subscription (admin/manager)."""
    return create_subscription(db, caller, **request.model_dump())


@router.put("/{subscription_id}", response_model=SubscriptionResponse)
async def update_existing_subscription(
    subscription_id: int,
    request: UpdateSubscriptionRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_roles(*Role.WRITERS)),
):
    """Partially update a subscription (admin/manager)."""
    return update_subscription(db, caller, subscription_id, request.model_dump(exclude_unset=True))


@router.patch("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_existing_subscription(
    subscription_id: int,
    request: Optional[CancelSubscriptionRequest] = None,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_roles(*Role.WRITERS)),
):
    reason = request.reason if request else None
    return cancel_subscription(db, caller, subscription_id, reason=reason)


@router.patch("/{subscription_id}/renew", response_model=SubscriptionResponse)
async def renew_existing_subscription(
    subscription_id: int,
    request: Optional[RenewSubscriptionRequest] = None,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_roles(*Role.WRITERS)),
):
    """Extend the subscription by one billing cycle."""
    discount = request.discount if request else None
    return renew_subscription(db, caller, subscription_id, discount=discount)
