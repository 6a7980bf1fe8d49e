"""
Subscription lifecycle engine.

States: trial, active, expired, cancelled.
- create:  (none) -> trial | active
- update:  trial -> active or same status (plan, dates, users, discount, payment, auto_renew)
- cancel:  any non-cancelled -> cancelled (terminal)
- renew:   extends the same row's end_date by one billing cycle, back to active
- expire:  active -> expired, only via the expiry sweep

Each write locks the client row first, so the overlap check and the write run
in one transaction and two concurrent writers for the same client serialize.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import case, func, and_
from sqlalchemy.orm import Session
from crm_billing.models.client import Client, ClientStatus
from crm_billing.models.subscription import Subscription, SubscriptionStatus, PaymentStatus
from crm_billing.services.access import (
    CallerContext,
    ensure_can_write,
    ensure_client_access,
    ensure_subscription_access,
    scope_subscription_query,
)
from crm_billing.services.audit import record_audit, get_entity_history
from crm_billing.services.catalog import get_plan, get_active_plan
from crm_billing.services.errors import (
    ClientNotFound,
    ClientInactive,
    SubscriptionNotFound,
    SubscriptionCancelled,
    AlreadyCancelled,
    CannotRenewCancelled,
    InvalidDateRange,
    InvalidStatusTransition,
    ValidationError,
)
from crm_billing.services.pricing import compute_amounts, advance_billing_period, to_money
from crm_billing.services.subscription.overlap import ensure_no_overlap
from crm_billing.services.subscription.subscription_models import (
    SubscriptionFilters,
    SubscriptionPage,
    SubscriptionStats,
)
from crm_billing.services.transaction import transaction

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({
    "plan_id",
    "start_date",
    "end_date",
    "num_users",
    "discount",
    "payment_status",
    "subscription_status",
    "auto_renew",
    "trial_ends_at",
    "remarks",
})

# Fields captured in audit snapshots
AUDITED_FIELDS = (
    "plan_id",
    "start_date",
    "end_date",
    "billing_cycle",
    "billing_months",
    "num_users",
    "amount_paid",
    "discount",
    "final_amount",
    "payment_status",
    "subscription_status",
    "auto_renew",
    "next_payment_date",
    "trial_ends_at",
    "remarks",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _today() -> date:
    return _utcnow().date()


def _snapshot(subscription: Subscription) -> dict:
    return {name: getattr(subscription, name) for name in AUDITED_FIELDS}


def _diff(before: dict, after: dict) -> tuple[dict, dict]:
    changed = [name for name in AUDITED_FIELDS if before.get(name) != after.get(name)]
    return (
        {name: before.get(name) for name in changed},
        {name: after.get(name) for name in changed},
    )


def _validate_payment_status(payment_status: str) -> None:
    if payment_status not in PaymentStatus.ALL:
        raise ValidationError(
            f"Unknown payment status '{payment_status}'",
            payment_status=payment_status,
            allowed=list(PaymentStatus.ALL),
        )


def lock_client(db: Session, client_id: int) -> Client:
    """SELECT ... FOR UPDATE on the client: serializes subscription writes per client."""
    client = db.query(Client).filter(Client.id == client_id).with_for_update().first()
    if not client:
        raise ClientNotFound(client_id)
    return client


def lock_subscription(db: Session, subscription_id: int) -> Subscription:
    """Lock the owning client, then the subscription row (always in that order)."""
    subscription = get_subscription_by_id(db, subscription_id)
    lock_client(db, subscription.client_id)
    return db.query(Subscription).filter(
        Subscription.id == subscription_id
    ).with_for_update().populate_existing().one()


def _stamp_payment_received(subscription: Subscription, now: datetime) -> None:
    """Record the payment time and, for auto-renewing rows, the next due date."""
    subscription.last_payment_at = now
    if subscription.auto_renew:
        subscription.next_payment_date = advance_billing_period(
            subscription.start_date, subscription.billing_months
        )


def get_subscription_by_id(db: Session, subscription_id: int) -> Subscription:
    """Get subscription by ID without access checks."""
    subscription = db.query(Subscription).filter(Subscription.id == subscription_id).first()
    if not subscription:
        raise SubscriptionNotFound(subscription_id)
    return subscription


def get_subscription(db: Session, caller: CallerContext, subscription_id: int) -> Subscription:
    """
    Get subscription for a caller.

    Raises SubscriptionNotFound when it does not exist and AccessForbidden when
    it exists but belongs to a client the caller does not own.
    """
    subscription = get_subscription_by_id(db, subscription_id)
    ensure_subscription_access(caller, subscription)
    return subscription


def create_subscription(
    db: Session,
    caller: CallerContext,
    client_id: int,
    plan_id: int,
    num_users: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    discount: Optional[Decimal] = None,
    payment_status: Optional[str] = None,
    subscription_status: Optional[str] = None,
    auto_renew: bool = False,
    trial_ends_at: Optional[date] = None,
    remarks: Optional[str] = None,
) -> Subscription:
    """
    Create a new subscription.

    Args:
        db: Database session
        caller: Authenticated caller (admin or manager)
        client_id: Client ID (must exist and be active)
        plan_id: Plan ID (must exist and be active)
        num_users: Users billed, within the plan's min/max
        start_date: Defaults to today (UTC)
        end_date: Defaults to start_date + plan.billing_months calendar months
        discount: Flat discount, defaults to 0
        payment_status: Defaults to 'pending'
        subscription_status: 'active' (default) or 'trial'

    Returns:
        Created Subscription
    """
    ensure_can_write(caller)
    payment_status = payment_status or PaymentStatus.PENDING
    subscription_status = subscription_status or SubscriptionStatus.ACTIVE
    _validate_payment_status(payment_status)
    if subscription_status not in (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE):
        raise InvalidStatusTransition(None, None, subscription_status)

    with transaction(db, f"create subscription for client {client_id}"):
        client = lock_client(db, client_id)
        ensure_client_access(caller, client)
        if client.status != ClientStatus.ACTIVE:
            raise ClientInactive(client.id, client.status)

        plan = get_active_plan(db, plan_id)

        start = start_date or _today()
        end = end_date or advance_billing_period(start, plan.billing_months)
        if end <= start:
            raise InvalidDateRange(start, end)

        if subscription_status == SubscriptionStatus.ACTIVE:
            ensure_no_overlap(db, client.id, start, end)

        amounts = compute_amounts(plan, num_users, discount)

        subscription = Subscription(
            client_id=client.id,
            plan_id=plan.id,
            start_date=start,
            end_date=end,
            trial_ends_at=trial_ends_at,
            billing_cycle=plan.billing_cycle,
            billing_months=plan.billing_months,
            num_users=num_users,
            amount_paid=amounts.amount_paid,
            discount=amounts.discount,
            final_amount=amounts.final_amount,
            payment_status=payment_status,
            subscription_status=subscription_status,
            auto_renew=auto_renew,
            remarks=remarks,
            created_by=caller.user_id,
        )
        if payment_status == PaymentStatus.PAID:
            _stamp_payment_received(subscription, _utcnow())

        db.add(subscription)
        db.flush()
        record_audit(db, caller.user_id, "created", "subscription", subscription.id,
                     new_value=_snapshot(subscription))

    db.refresh(subscription)
    logger.info(
        f"Created subscription {subscription.id} for client {client_id} on plan {plan_id}: "
        f"{num_users} users, {subscription.start_date} to {subscription.end_date}, "
        f"amount {subscription.amount_paid}, final {subscription.final_amount}"
    )
    return subscription


def update_subscription(
    db: Session,
    caller: CallerContext,
    subscription_id: int,
    changes: dict,
) -> Subscription:
    """
    Apply a partial update.

    Pricing re-runs when plan, num_users or discount change (against the plan's
    current price). Overlap re-runs, excluding this row, when the window moves
    or the row becomes active. A transition of payment_status into 'paid'
    stamps last_payment_at and, with auto_renew, next_payment_date.
    """
    ensure_can_write(caller)
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Fields cannot be updated: {', '.join(sorted(unknown))}",
            fields=sorted(unknown),
        )
    changes = {key: value for key, value in changes.items() if value is not None}

    with transaction(db, f"update subscription {subscription_id}"):
        subscription = lock_subscription(db, subscription_id)
        ensure_subscription_access(caller, subscription)
        if subscription.subscription_status == SubscriptionStatus.CANCELLED:
            raise SubscriptionCancelled(subscription.id)

        before = _snapshot(subscription)

        # Plan: a change copies the new plan's cycle; otherwise re-read current pricing
        plan_changed = "plan_id" in changes and changes["plan_id"] != subscription.plan_id
        if plan_changed:
            plan = get_active_plan(db, changes["plan_id"])
            subscription.plan_id = plan.id
            subscription.billing_cycle = plan.billing_cycle
            subscription.billing_months = plan.billing_months
        else:
            plan = get_plan(db, subscription.plan_id)

        # Status: only trial -> active is allowed here
        new_status = changes.get("subscription_status", subscription.subscription_status)
        if new_status != subscription.subscription_status:
            if not (subscription.subscription_status == SubscriptionStatus.TRIAL
                    and new_status == SubscriptionStatus.ACTIVE):
                raise InvalidStatusTransition(subscription.id, subscription.subscription_status, new_status)
        becomes_active = (
            new_status == SubscriptionStatus.ACTIVE
            and subscription.subscription_status != SubscriptionStatus.ACTIVE
        )

        # Dates
        new_start = changes.get("start_date", subscription.start_date)
        new_end = changes.get("end_date", subscription.end_date)
        dates_changed = new_start != subscription.start_date or new_end != subscription.end_date
        if dates_changed and new_end <= new_start:
            raise InvalidDateRange(new_start, new_end)
        if new_status == SubscriptionStatus.ACTIVE and (dates_changed or becomes_active):
            ensure_no_overlap(db, subscription.client_id, new_start, new_end,
                              exclude_subscription_id=subscription.id)
        subscription.start_date = new_start
        subscription.end_date = new_end
        subscription.subscription_status = new_status

        # Pricing
        if plan_changed or "num_users" in changes or "discount" in changes:
            num_users = changes.get("num_users", subscription.num_users)
            discount = changes.get("discount", subscription.discount)
            amounts = compute_amounts(plan, num_users, discount)
            subscription.num_users = num_users
            subscription.amount_paid = amounts.amount_paid
            subscription.discount = amounts.discount
            subscription.final_amount = amounts.final_amount

        if "auto_renew" in changes:
            subscription.auto_renew = bool(changes["auto_renew"])
        if "trial_ends_at" in changes:
            subscription.trial_ends_at = changes["trial_ends_at"]
        if "remarks" in changes:
            subscription.remarks = changes["remarks"]

        # Payment status
        if "payment_status" in changes:
            new_payment_status = changes["payment_status"]
            _validate_payment_status(new_payment_status)
            if new_payment_status == PaymentStatus.PAID and subscription.payment_status != PaymentStatus.PAID:
                _stamp_payment_received(subscription, _utcnow())
            subscription.payment_status = new_payment_status

        old_value, new_value = _diff(before, _snapshot(subscription))
        if new_value:
            record_audit(db, caller.user_id, "updated", "subscription", subscription.id,
                         old_value=old_value, new_value=new_value)

    db.refresh(subscription)
    logger.info(f"Updated subscription {subscription.id}: {sorted(new_value.keys())}")
    return subscription


def cancel_subscription(
    db: Session,
    caller: CallerContext,
    subscription_id: int,
    reason: Optional[str] = None,
) -> Subscription:
    """
    Cancel a subscription. Terminal: also switches auto_renew off.

    Raises AlreadyCancelled if it is already cancelled.
    """
    ensure_can_write(caller)

    with transaction(db, f"cancel subscription {subscription_id}"):
        subscription = lock_subscription(db, subscription_id)
        ensure_subscription_access(caller, subscription)
        if subscription.subscription_status == SubscriptionStatus.CANCELLED:
            raise AlreadyCancelled(subscription.id)

        before = _snapshot(subscription)
        subscription.subscription_status = SubscriptionStatus.CANCELLED
        subscription.auto_renew = False
        subscription.cancelled_at = _utcnow()
        subscription.cancelled_reason = reason

        old_value, new_value = _diff(before, _snapshot(subscription))
        new_value["cancelled_reason"] = reason
        record_audit(db, caller.user_id, "cancelled", "subscription", subscription.id,
                     old_value=old_value, new_value=new_value)

    db.refresh(subscription)
    logger.info(f"Cancelled subscription {subscription.id}" + (f": {reason}" if reason else ""))
    return subscription


def renew_subscription(
    db: Session,
    caller: CallerContext,
    subscription_id: int,
    discount: Optional[Decimal] = None,
) -> Subscription:
    """
    Renew a subscription in place for one more billing cycle.

    The new end_date is the current end_date advanced by billing_months (not
    counted from today). Amounts are re-priced for the existing user count at
    the plan's current price, discount resets to 0 unless given, and the
    renewal stays pending until a payment is recorded.

    Raises CannotRenewCancelled for cancelled subscriptions.
    """
    ensure_can_write(caller)

    with transaction(db, f"renew subscription {subscription_id}"):
        subscription = lock_subscription(db, subscription_id)
        ensure_subscription_access(caller, subscription)
        if subscription.subscription_status == SubscriptionStatus.CANCELLED:
            raise CannotRenewCancelled(subscription.id)

        before = _snapshot(subscription)
        plan = get_plan(db, subscription.plan_id)
        new_end_date = advance_billing_period(subscription.end_date, subscription.billing_months)

        ensure_no_overlap(db, subscription.client_id, subscription.start_date, new_end_date,
                          exclude_subscription_id=subscription.id)

        amounts = compute_amounts(plan, subscription.num_users, discount)

        subscription.end_date = new_end_date
        subscription.subscription_status = SubscriptionStatus.ACTIVE
        subscription.payment_status = PaymentStatus.PENDING
        subscription.amount_paid = amounts.amount_paid
        subscription.discount = amounts.discount
        subscription.final_amount = amounts.final_amount

        old_value, new_value = _diff(before, _snapshot(subscription))
        record_audit(db, caller.user_id, "renewed", "subscription", subscription.id,
                     old_value=old_value, new_value=new_value)

    db.refresh(subscription)
    logger.info(
        f"Renewed subscription {subscription.id}: end_date {before['end_date']} -> {subscription.end_date}, "
        f"amount {subscription.amount_paid}, final {subscription.final_amount}"
    )
    return subscription


def list_subscriptions(
    db: Session,
    caller: CallerContext,
    filters: Optional[SubscriptionFilters] = None,
    limit: int = 20,
    offset: int = 0,
) -> SubscriptionPage:
    """List subscriptions visible to the caller, newest first."""
    filters = filters or SubscriptionFilters()
    query = scope_subscription_query(db.query(Subscription), caller)

    if filters.subscription_status:
        query = query.filter(Subscription.subscription_status == filters.subscription_status)
    if filters.payment_status:
        query = query.filter(Subscription.payment_status == filters.payment_status)
    if filters.client_id:
        query = query.filter(Subscription.client_id == filters.client_id)
    if filters.plan_id:
        query = query.filter(Subscription.plan_id == filters.plan_id)
    if filters.billing_cycle:
        query = query.filter(Subscription.billing_cycle == filters.billing_cycle)
    if filters.start_date_from:
        query = query.filter(Subscription.start_date >= filters.start_date_from)
    if filters.end_date_to:
        query = query.filter(Subscription.end_date <= filters.end_date_to)

    total = query.count()
    rows = query.order_by(Subscription.id.desc()).limit(limit).offset(offset).all()
    return SubscriptionPage(rows=rows, total=total, limit=limit, offset=offset)


def get_subscription_history(db: Session, caller: CallerContext, subscription_id: int) -> list:
    """Audit trail of a subscription (creation, updates, renewals, payments), newest first."""
    get_subscription(db, caller, subscription_id)
    return get_entity_history(db, "subscription", subscription_id)


def get_subscription_stats(db: Session, caller: CallerContext, today: Optional[date] = None) -> SubscriptionStats:
    """
    Counts by status and payment status plus revenue rollups, in one query.

    Narrowed by the access filter like every other read.
    """
    today = today or _today()
    status = Subscription.subscription_status
    payment = Subscription.payment_status

    def count_where(condition):
        return func.sum(case((condition, 1), else_=0))

    def amount_where(condition):
        return func.sum(case((condition, Subscription.final_amount), else_=0))

    def expiring_within(days: int):
        return count_where(and_(
            status == SubscriptionStatus.ACTIVE,
            Subscription.end_date >= today,
            Subscription.end_date <= today + timedelta(days=days),
        ))

    query = db.query(
        func.count(Subscription.id),
        count_where(status == SubscriptionStatus.ACTIVE),
        count_where(status == SubscriptionStatus.EXPIRED),
        count_where(status == SubscriptionStatus.CANCELLED),
        count_where(status == SubscriptionStatus.TRIAL),
        count_where(payment == PaymentStatus.PAID),
        count_where(payment == PaymentStatus.PENDING),
        count_where(payment == PaymentStatus.FAILED),
        count_where(payment == PaymentStatus.REFUNDED),
        func.sum(Subscription.final_amount),
        amount_where(payment == PaymentStatus.PAID),
        amount_where(status == SubscriptionStatus.ACTIVE),
        expiring_within(7),
        expiring_within(30),
    ).select_from(Subscription)
    row = scope_subscription_query(query, caller).one()

    (total, active, expired, cancelled, trial,
     paid, pending, failed, refunded,
     billed, collected, active_value,
     expiring_7, expiring_30) = row

    return SubscriptionStats(
        total=total or 0,
        active=int(active or 0),
        expired=int(expired or 0),
        cancelled=int(cancelled or 0),
        trial=int(trial or 0),
        payments={
            "paid": int(paid or 0),
            "pending": int(pending or 0),
            "failed": int(failed or 0),
            "refunded": int(refunded or 0),
        },
        revenue={
            "billed": to_money(billed),
            "collected": to_money(collected),
            "active_value": to_money(active_value),
        },
        expiring_in_7_days=int(expiring_7 or 0),
        expiring_in_30_days=int(expiring_30 or 0),
    )
