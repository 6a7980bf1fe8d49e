"""
Plan catalog and client registry.

Plans and clients are re-read on every operation; nothing here is cached
across requests so the engine always prices against the current plan.
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from crm_billing.models.client import Client, ClientStatus
from crm_billing.models.plan import Plan
from crm_billing.models.subscription import Subscription, SubscriptionStatus
from crm_billing.services.access import CallerContext, scope_client_query, ensure_client_access, ensure_can_write
from crm_billing.services.audit import record_audit
from crm_billing.services.errors import (
    BillingError,
    ClientNotFound,
    DuplicateClientEmail,
    DuplicatePlanName,
    InvalidPlanDefinition,
    PlanInactive,
    PlanNotFound,
    ValidationError,
)
from crm_billing.services.pricing import BILLING_MONTHS, to_money
from crm_billing.services.transaction import transaction

logger = logging.getLogger(__name__)

BILLING_TYPES = ("prepaid", "postpaid")

PLAN_UPDATABLE_FIELDS = frozenset({
    "name",
    "description",
    "price_per_user",
    "billing_cycle",
    "billing_months",
    "billing_type",
    "min_users",
    "max_users",
    "features",
    "module_access",
})

CLIENT_UPDATABLE_FIELDS = frozenset({
    "company_name",
    "contact_person",
    "email",
    "phone",
    "gst_number",
    "status",
    "notes",
})


def _reject_unknown_fields(changes: dict, allowed: frozenset) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(
            f"Fields cannot be updated: {', '.join(sorted(unknown))}",
            fields=sorted(unknown),
        )


def _flush_unique(db: Session, conflict: BillingError) -> None:
    """Flush, turning a unique-key violation into the given conflict."""
    try:
        db.flush()
    except IntegrityError:
        raise conflict


def get_plan(db: Session, plan_id: int) -> Plan:
    """Get plan by ID (active or not)."""
    plan = db.query(Plan).filter(Plan.id == plan_id).first()
    if not plan:
        raise PlanNotFound(plan_id)
    return plan


def get_active_plan(db: Session, plan_id: int) -> Plan:
    """Get a plan that may be attached to a subscription."""
    plan = get_plan(db, plan_id)
    if not plan.is_active:
        raise PlanInactive(plan.id, plan.name)
    return plan


def list_plans(db: Session, include_inactive: bool = False) -> list[Plan]:
    query = db.query(Plan)
    if not include_inactive:
        query = query.filter(Plan.is_active.is_(True))
    return query.order_by(Plan.billing_months.asc(), Plan.price_per_user.desc()).all()


def validate_plan_definition(
    billing_cycle: str,
    billing_months: int,
    min_users: int,
    max_users: int,
    price_per_user: Decimal,
    billing_type: str = "prepaid",
) -> None:
    """Reject plans whose cycle, month count, user bounds or price disagree."""
    if billing_cycle not in BILLING_MONTHS:
        raise InvalidPlanDefinition(
            f"Unknown billing cycle '{billing_cycle}'",
            billing_cycle=billing_cycle,
        )
    expected_months = BILLING_MONTHS[billing_cycle]
    if billing_months != expected_months:
        raise InvalidPlanDefinition(
            f"billing_months must be {expected_months} for a {billing_cycle} plan",
            billing_cycle=billing_cycle,
            billing_months=billing_months,
        )
    if min_users < 1 or min_users > max_users:
        raise InvalidPlanDefinition(
            f"min_users ({min_users}) must be between 1 and max_users ({max_users})",
            min_users=min_users,
            max_users=max_users,
        )
    if to_money(price_per_user) < 0:
        raise InvalidPlanDefinition("price_per_user cannot be negative", price_per_user=str(price_per_user))
    if billing_type not in BILLING_TYPES:
        raise InvalidPlanDefinition(f"Unknown billing type '{billing_type}'", billing_type=billing_type)


def _plan_snapshot(plan: Plan) -> dict:
    return {name: getattr(plan, name) for name in sorted(PLAN_UPDATABLE_FIELDS | {"is_active"})}


def create_plan(
    db: Session,
    caller: CallerContext,
    name: str,
    price_per_user: Decimal,
    billing_cycle: str,
    billing_months: Optional[int] = None,
    min_users: int = 5,
    max_users: int = 500,
    description: Optional[str] = None,
    billing_type: str = "prepaid",
    features: Optional[list[str]] = None,
    module_access: Optional[dict[str, bool]] = None,
) -> Plan:
    """
    Create a plan. billing_months defaults to the cycle's month count.
    """
    ensure_can_write(caller)
    if billing_months is None:
        billing_months = BILLING_MONTHS.get(billing_cycle, 0)
    validate_plan_definition(billing_cycle, billing_months, min_users, max_users, price_per_user, billing_type)

    plan = Plan(
        name=name,
        description=description,
        price_per_user=to_money(price_per_user),
        billing_cycle=billing_cycle,
        billing_months=billing_months,
        billing_type=billing_type,
        min_users=min_users,
        max_users=max_users,
        features=features or [],
        module_access=module_access or {},
        is_active=True,
    )
    with transaction(db, f"create plan {name}"):
        db.add(plan)
        _flush_unique(db, DuplicatePlanName(name))
        record_audit(db, caller.user_id, "created", "plan", plan.id, new_value={
            "name": name,
            "price_per_user": str(plan.price_per_user),
            "billing_cycle": billing_cycle,
        })
    db.refresh(plan)
    logger.info(f"Plan {plan.id} ({plan.name}) created by user {caller.user_id}")
    return plan


def update_plan(db: Session, caller: CallerContext, plan_id: int, changes: dict) -> Plan:
    """
    Partially update a plan.

    The merged definition is validated as a whole. Changing billing_cycle
    without billing_months takes the cycle's month count. Existing
    subscriptions keep their stored amounts until their next update or renewal,
    which re-price against the plan as it is then.
    """
    ensure_can_write(caller)
    _reject_unknown_fields(changes, PLAN_UPDATABLE_FIELDS)
    changes = {key: value for key, value in changes.items() if value is not None}
    if "billing_cycle" in changes and "billing_months" not in changes:
        changes["billing_months"] = BILLING_MONTHS.get(changes["billing_cycle"], 0)

    with transaction(db, f"update plan {plan_id}"):
        plan = db.query(Plan).filter(Plan.id == plan_id).with_for_update().first()
        if not plan:
            raise PlanNotFound(plan_id)

        merged = {name: changes.get(name, getattr(plan, name)) for name in PLAN_UPDATABLE_FIELDS}
        validate_plan_definition(
            merged["billing_cycle"],
            merged["billing_months"],
            merged["min_users"],
            merged["max_users"],
            merged["price_per_user"],
            merged["billing_type"],
        )
        if "price_per_user" in changes:
            changes["price_per_user"] = to_money(changes["price_per_user"])

        before = _plan_snapshot(plan)
        for name, value in changes.items():
            setattr(plan, name, value)
        _flush_unique(db, DuplicatePlanName(plan.name))

        after = _plan_snapshot(plan)
        changed = [name for name in after if before[name] != after[name]]
        if changed:
            record_audit(db, caller.user_id, "updated", "plan", plan.id,
                         old_value={name: before[name] for name in changed},
                         new_value={name: after[name] for name in changed})

    db.refresh(plan)
    logger.info(f"Plan {plan.id} updated by user {caller.user_id}: {', '.join(changed) or 'no changes'}")
    return plan


def _set_plan_active(db: Session, caller: CallerContext, plan_id: int, is_active: bool) -> Plan:
    ensure_can_write(caller)
    action = "activated" if is_active else "deactivated"
    with transaction(db, f"{action[:-1]} plan {plan_id}"):
        plan = get_plan(db, plan_id)
        if plan.is_active == is_active:
            return plan
        plan.is_active = is_active
        record_audit(db, caller.user_id, action, "plan", plan.id,
                     old_value={"is_active": not is_active}, new_value={"is_active": is_active})
    db.refresh(plan)
    logger.info(f"Plan {plan.id} {action} by user {caller.user_id}")
    return plan


def deactivate_plan(db: Session, caller: CallerContext, plan_id: int) -> Plan:
    """Soft-delete a plan; existing subscriptions keep it, new ones cannot use it."""
    return _set_plan_active(db, caller, plan_id, False)


def activate_plan(db: Session, caller: CallerContext, plan_id: int) -> Plan:
    """Make a deactivated plan available to new subscriptions again."""
    return _set_plan_active(db, caller, plan_id, True)


def _validate_client_status(status: str) -> None:
    if status not in ClientStatus.ALL:
        raise ValidationError(
            f"Unknown client status '{status}'",
            status=status,
            allowed=list(ClientStatus.ALL),
        )


def get_client(db: Session, client_id: int) -> Client:
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise ClientNotFound(client_id)
    return client


def get_client_for_caller(db: Session, caller: CallerContext, client_id: int) -> Client:
    """Client detail: 404 when missing, 403 when owned by someone else."""
    client = get_client(db, client_id)
    ensure_client_access(caller, client)
    return client


def list_clients(
    db: Session,
    caller: CallerContext,
    status: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Client], int]:
    """List clients visible to the caller. Returns (rows, total)."""
    query = scope_client_query(db.query(Client), caller)
    if status:
        query = query.filter(Client.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(Client.company_name.ilike(pattern) | Client.email.ilike(pattern))

    total = query.count()
    rows = query.order_by(Client.id.desc()).limit(limit).offset(offset).all()
    return rows, total


def create_client(
    db: Session,
    caller: CallerContext,
    company_name: str,
    contact_person: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    gst_number: Optional[str] = None,
    status: str = ClientStatus.ACTIVE,
    notes: Optional[str] = None,
) -> Client:
    """Register a client owned by the caller."""
    _validate_client_status(status)
    client = Client(
        company_name=company_name,
        contact_person=contact_person,
        email=email,
        phone=phone,
        gst_number=gst_number,
        status=status,
        notes=notes,
        created_by=caller.user_id,
    )
    with transaction(db, f"create client {company_name}"):
        db.add(client)
        _flush_unique(db, DuplicateClientEmail(email))
        record_audit(db, caller.user_id, "created", "client", client.id,
                     new_value={"company_name": company_name, "status": status})
    db.refresh(client)
    logger.info(f"Client {client.id} ({company_name}) created by user {caller.user_id}")
    return client


def update_client(db: Session, caller: CallerContext, client_id: int, changes: dict) -> Client:
    """
    Partially update a client the caller can access.

    Contact details can be edited by the owner. Moving the client between
    active, inactive and suspended needs an admin or manager; a client that is
    not active cannot receive new subscriptions.
    """
    _reject_unknown_fields(changes, CLIENT_UPDATABLE_FIELDS)
    changes = {key: value for key, value in changes.items() if value is not None}
    if "status" in changes:
        _validate_client_status(changes["status"])

    with transaction(db, f"update client {client_id}"):
        client = db.query(Client).filter(Client.id == client_id).with_for_update().first()
        if not client:
            raise ClientNotFound(client_id)
        ensure_client_access(caller, client)
        if changes.get("status", client.status) != client.status:
            ensure_can_write(caller)

        before = {name: getattr(client, name) for name in sorted(CLIENT_UPDATABLE_FIELDS)}
        for name, value in changes.items():
            setattr(client, name, value)
        _flush_unique(db, DuplicateClientEmail(client.email))

        changed = [name for name in before if before[name] != getattr(client, name)]
        if changed:
            record_audit(db, caller.user_id, "updated", "client", client.id,
                         old_value={name: before[name] for name in changed},
                         new_value={name: getattr(client, name) for name in changed})

    db.refresh(client)
    logger.info(f"Client {client.id} updated by user {caller.user_id}: {', '.join(changed) or 'no changes'}")
    return client


def get_client_modules(db: Session, client_id: int, today: Optional[date] = None) -> dict[str, bool]:
    """
    Module entitlements for a client.

    Uses the plan of the client's current trial/active subscription whose window
    covers today. Without one, every module known to the catalog is disabled.
    """
    today = today or datetime.now(timezone.utc).date()
    get_client(db, client_id)

    subscription = db.query(Subscription).filter(
        Subscription.client_id == client_id,
        Subscription.subscription_status.in_([SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL]),
        Subscription.start_date <= today,
        Subscription.end_date >= today,
    ).order_by(Subscription.start_date.desc()).first()

    if subscription:
        return {name: bool(enabled) for name, enabled in (subscription.plan.module_access or {}).items()}

    modules: dict[str, bool] = {}
    for (module_access,) in db.query(Plan.module_access).all():
        for name in (module_access or {}):
            modules[name] = False
    return modules
