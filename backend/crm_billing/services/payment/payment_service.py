"""
Payment recording and its effect on the owning subscription.

A payment recorded (or later marked) as paid settles the subscription in the
same transaction: payment_status becomes paid, last_payment_at is stamped and
the subscription becomes active again unless it was cancelled.
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from crm_billing.core.config import DEFAULT_CURRENCY
from crm_billing.models.payment import Payment, PAYMENT_METHODS
from crm_billing.models.subscription import Subscription, SubscriptionStatus, PaymentStatus
from crm_billing.services.access import (
    CallerContext,
    ensure_can_write,
    ensure_subscription_access,
    scope_payment_query,
)
from crm_billing.services.audit import record_audit
from crm_billing.services.errors import (
    PaymentNotFound,
    DuplicatePaymentReference,
    ValidationError,
)
from crm_billing.services.payment.payment_models import PaymentFilters, PaymentPage
from crm_billing.services.pricing import to_money, advance_billing_period
from crm_billing.services.subscription import lock_subscription, ensure_no_overlap
from crm_billing.services.transaction import transaction

logger = logging.getLogger(__name__)

PAYMENT_UPDATABLE_FIELDS = frozenset({
    "amount",
    "payment_method",
    "payment_status",
    "transaction_id",
    "receipt_number",
    "failure_reason",
    "payment_date",
    "notes",
})


def _validate_method(payment_method: str) -> None:
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Unknown payment method '{payment_method}'",
            payment_method=payment_method,
            allowed=list(PAYMENT_METHODS),
        )


def _validate_status(payment_status: str) -> None:
    if payment_status not in PaymentStatus.ALL:
        raise ValidationError(
            f"Unknown payment status '{payment_status}'",
            payment_status=payment_status,
            allowed=list(PaymentStatus.ALL),
        )


def _validate_amount(amount) -> Decimal:
    amount = to_money(amount)
    if amount < 0:
        raise ValidationError(f"Payment amount cannot be negative (got {amount})", amount=str(amount))
    return amount


def _flush_payment(db: Session, payment: Payment) -> None:
    """Flush, turning unique-key violations on the references into a conflict."""
    try:
        db.flush()
    except IntegrityError:
        raise DuplicatePaymentReference(payment.transaction_id, payment.receipt_number)


def _settle_subscription(db: Session, caller: CallerContext, subscription: Subscription, payment: Payment) -> None:
    """Apply a paid payment to its subscription (already locked by the caller)."""
    old_value = {
        "payment_status": subscription.payment_status,
        "subscription_status": subscription.subscription_status,
    }
    subscription.payment_status = PaymentStatus.PAID
    subscription.last_payment_at = datetime.now(timezone.utc)
    if subscription.auto_renew:
        subscription.next_payment_date = advance_billing_period(
            subscription.start_date, subscription.billing_months
        )
    if subscription.subscription_status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED):
        ensure_no_overlap(db, subscription.client_id, subscription.start_date, subscription.end_date,
                          exclude_subscription_id=subscription.id)
        subscription.subscription_status = SubscriptionStatus.ACTIVE

    record_audit(db, caller.user_id, "payment_received", "subscription", subscription.id,
                 old_value=old_value,
                 new_value={
                     "payment_id": payment.id,
                     "amount": payment.amount,
                     "payment_status": subscription.payment_status,
                     "subscription_status": subscription.subscription_status,
                 })


def get_payment_by_id(db: Session, payment_id: int) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if not payment:
        raise PaymentNotFound(payment_id)
    return payment


def record_payment(
    db: Session,
    caller: CallerContext,
    subscription_id: int,
    payment_method: str,
    payment_status: str = PaymentStatus.PENDING,
    amount: Optional[Decimal] = None,
    currency: Optional[str] = None,
    transaction_id: Optional[str] = None,
    receipt_number: Optional[str] = None,
    failure_reason: Optional[str] = None,
    payment_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> Payment:
    """
    Record a payment against a subscription.

    Args:
        db: Database session
        caller: Authenticated caller (admin or manager)
        subscription_id: Subscription being paid for
        payment_method: One of PAYMENT_METHODS
        payment_status: Defaults to 'pending'
        amount: Defaults to the subscription's final_amount

    Returns:
        Created Payment
    """
    ensure_can_write(caller)
    _validate_method(payment_method)
    _validate_status(payment_status)

    with transaction(db, f"record payment for subscription {subscription_id}"):
        subscription = lock_subscription(db, subscription_id)
        ensure_subscription_access(caller, subscription)

        payment = Payment(
            subscription_id=subscription.id,
            client_id=subscription.client_id,
            amount=_validate_amount(subscription.final_amount if amount is None else amount),
            currency=currency or DEFAULT_CURRENCY,
            payment_method=payment_method,
            payment_status=payment_status,
            transaction_id=transaction_id,
            receipt_number=receipt_number,
            failure_reason=failure_reason,
            payment_date=payment_date or (
                datetime.now(timezone.utc).date() if payment_status == PaymentStatus.PAID else None
            ),
            notes=notes,
            created_by=caller.user_id,
        )
        db.add(payment)
        _flush_payment(db, payment)
        record_audit(db, caller.user_id, "created", "payment", payment.id, new_value={
            "subscription_id": subscription.id,
            "amount": payment.amount,
            "payment_method": payment_method,
            "payment_status": payment_status,
        })

        if payment_status == PaymentStatus.PAID:
            _settle_subscription(db, caller, subscription, payment)

    db.refresh(payment)
    logger.info(
        f"Recorded payment {payment.id} of {payment.amount} {payment.currency} "
        f"({payment.payment_status}) for subscription {subscription_id}"
    )
    return payment


def update_payment(db: Session, caller: CallerContext, payment_id: int, changes: dict) -> Payment:
    """
    Partially update a payment. A transition into 'paid' settles the subscription.
    """
    ensure_can_write(caller)
    unknown = set(changes) - PAYMENT_UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Fields cannot be updated: {', '.join(sorted(unknown))}",
            fields=sorted(unknown),
        )
    changes = {key: value for key, value in changes.items() if value is not None}
    if "payment_method" in changes:
        _validate_method(changes["payment_method"])
    if "payment_status" in changes:
        _validate_status(changes["payment_status"])
    if "amount" in changes:
        changes["amount"] = _validate_amount(changes["amount"])

    with transaction(db, f"update payment {payment_id}"):
        payment = get_payment_by_id(db, payment_id)
        subscription = lock_subscription(db, payment.subscription_id)
        ensure_subscription_access(caller, subscription)
        db.refresh(payment)

        becomes_paid = (
            changes.get("payment_status") == PaymentStatus.PAID
            and payment.payment_status != PaymentStatus.PAID
        )
        old_value = {key: getattr(payment, key) for key in changes}
        for key, value in changes.items():
            setattr(payment, key, value)
        if becomes_paid and payment.payment_date is None:
            payment.payment_date = datetime.now(timezone.utc).date()
        _flush_payment(db, payment)

        record_audit(db, caller.user_id, "updated", "payment", payment.id,
                     old_value=old_value, new_value=changes)
        if becomes_paid:
            _settle_subscription(db, caller, subscription, payment)

    db.refresh(payment)
    logger.info(f"Updated payment {payment.id}: {sorted(changes.keys())}")
    return payment


def list_payments(
    db: Session,
    caller: CallerContext,
    filters: Optional[PaymentFilters] = None,
    limit: int = 20,
    offset: int = 0,
) -> PaymentPage:
    """List payments visible to the caller, newest first."""
    filters = filters or PaymentFilters()
    query = scope_payment_query(db.query(Payment), caller)

    if filters.client_id:
        query = query.filter(Payment.client_id == filters.client_id)
    if filters.subscription_id:
        query = query.filter(Payment.subscription_id == filters.subscription_id)
    if filters.payment_status:
        query = query.filter(Payment.payment_status == filters.payment_status)
    if filters.payment_method:
        query = query.filter(Payment.payment_method == filters.payment_method)
    if filters.paid_from:
        query = query.filter(Payment.payment_date >= filters.paid_from)
    if filters.paid_to:
        query = query.filter(Payment.payment_date <= filters.paid_to)

    total = query.count()
    rows = query.order_by(Payment.id.desc()).limit(limit).offset(offset).all()
    return PaymentPage(rows=rows, total=total, limit=limit, offset=offset)
