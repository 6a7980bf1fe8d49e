"""
Plan catalog API endpoints.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from crm_billing.core.database import get_db
from crm_billing.core.auth import get_current_caller, require_roles
from crm_billing.services.access import CallerContext, Role
from crm_billing.services.catalog import (
    list_plans,
    get_plan,
    create_plan,
    update_plan,
    activate_plan,
    deactivate_plan,
)

router = APIRouter()


class CreatePlanRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    price_per_user: Decimal
    billing_cycle: str
    billing_months: Optional[int] = None
    billing_type: str = "prepaid"
    min_users: int = 5
    max_users: int = 500
    features: List[str] = []
    module_access: dict[str, bool] = {}


class UpdatePlanRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price_per_user: Optional[Decimal] = None
    billing_cycle: Optional[str] = None
    billing_months: Optional[int] = None
    billing_type: Optional[str] = None
    min_users: Optional[int] = None
    max_users: Optional[int] = None
    features: Optional[List[str]] = None
    module_access: Optional[dict[str, bool]] = None


class PlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    price_per_user: Decimal
    billing_cycle: str
    billing_months: int
    billing_type: str
    min_users: int
    max_users: int
    features: Optional[List[str]]
    module_access: Optional[dict[str, bool]]
    is_active: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


@router.get("/", response_model=List[PlanResponse])
async def list_all_plans(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    return list_plans(db, include_inactive=include_inactive)


@router.post("/", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def create_new_plan(
    request: CreatePlanRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_roles(*Role.WRITERS)),
):
    return create_plan(db, caller, **request.model_dump())


@router.delete("/{plan_id}", response_model=PlanResponse)
async def delete_plan(
    plan_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_roles(*Role.WRITERS)),
):
    """Soft delete: the plan is deactivated, existing subscriptions keep it."""
    return deactivate_plan(db, caller, plan_id)


@router.get("/{plan_id}", response_model=PlanResponse)
async def get_plan_detail(
    plan_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    return get_plan(db, plan_id)


@router.put("/{plan_id}", response_model=PlanResponse)
async def update_existing_plan(
    plan_id: int,
    request: UpdatePlanRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_roles(*Role.WRITERS)),
):
    """Partially update a plan; subscriptions pick up a new price on their next update or renewal."""
    return update_plan(db, caller, plan_id, request.model_dump(exclude_unset=True))


@router.post("/{plan_id}/activate", response_model=PlanResponse)
async def reactivate_plan(
    plan_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_roles(*Role.WRITERS)),
):
    return activate_plan(db, caller, plan_id)
