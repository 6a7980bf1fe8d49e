"""
Payment API endpoints.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal

from crm_billing.core.database import get_db
from crm_billing.core.auth import get_current_caller, require_roles
from crm_billing.models.subscription import PaymentStatus
from crm_billing.services.access import CallerContext, Role
from crm_billing.services.payment import record_payment, update_payment, list_payments, PaymentFilters

router = APIRouter()


class RecordPaymentRequest(BaseModel):
    subscription_id: int
    payment_method: str = "upi"
    payment_status: str = PaymentStatus.PENDING
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    transaction_id: Optional[str] = None
    receipt_number: Optional[str] = None
    failure_reason: Optional[str] = None
    payment_date: Optional[date] = None
    notes: Optional[str] = None


class UpdatePaymentRequest(BaseModel):
    amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    transaction_id: Optional[str] = None
    receipt_number: Optional[str] = None
    failure_reason: Optional[str] = None
    payment_date: Optional[date] = None
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    subscription_id: int
    client_id: int
    amount: Decimal
    currency: str
    payment_method: str
    payment_status: str
    transaction_id: Optional[str]
    receipt_number: Optional[str]
    failure_reason: Optional[str]
    payment_date: Optional[date]
    notes: Optional[str]
    created_by: Optional[int]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    items: List[PaymentResponse]
    total: int
    limit: int
    offset: int


@router.get("/", response_model=PaymentListResponse)
async def list_all_payments(
    client_id: Optional[int] = Query(None),
    subscription_id: Optional[int] = Query(None),
    payment_status: Optional[str] = Query(None),
    payment_method: Optional[str] = Query(None),
    paid_from: Optional[date] = Query(None),
    paid_to: Optional[date] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    filters = PaymentFilters(
        client_id=client_id,
        subscription_id=subscription_id,
        payment_status=payment_status,
        payment_method=payment_method,
        paid_from=paid_from,
        paid_to=paid_to,
    )
    page = list_payments(db, caller, filters, limit=limit, offset=offset)
    return PaymentListResponse(
        items=[PaymentResponse.model_validate(row) for row in page.rows],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.post("/", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    request: RecordPaymentRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_roles(*Role.WRITERS)),
):
    """Record a payment; a paid payment settles its subscription."""
    return record_payment(db, caller, **request.model_dump())


@router.put("/{payment_id}", response_model=PaymentResponse)
async def update_existing_payment(
    payment_id: int,
    request: UpdatePaymentRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(require_roles(*Role.WRITERS)),
):
    return update_payment(db, caller, payment_id, request.model_dump(exclude_unset=True))
