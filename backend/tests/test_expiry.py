from datetime import date
from decimal import Decimal

from crm_billing.models.audit_log import AuditLog
from crm_billing.models.subscription import Subscription, SubscriptionStatus
from crm_billing.services.scheduler import (
    EXPIRY_JOB_ID,
    add_expiry_job,
    start_expiry_job,
    expire_overdue_subscriptions,
    get_scheduler,
    stop_scheduler,
)
from crm_billing.services.subscription import create_subscription, cancel_subscription


def _status(db, subscription_id):
    return db.query(Subscription.subscription_status).filter(Subscription.id == subscription_id).scalar()


def test_sweep_expires_only_past_due_active_rows(db, admin_caller, make_client, quarterly_plan):
    overdue = create_subscription(db, admin_caller, make_client().id, quarterly_plan.id,
                                  num_users=10, start_date=date(2026, 1, 1))
    ends_today = create_subscription(db, admin_caller, make_client().id, quarterly_plan.id,
                                     num_users=10, start_date=date(2026, 1, 10), end_date=date(2026, 4, 10))
    cancelled = create_subscription(db, admin_caller, make_client().id, quarterly_plan.id,
                                    num_users=10, start_date=date(2026, 1, 1))
    cancel_subscription(db, admin_caller, cancelled.id)

    assert expire_overdue_subscriptions(db, today=date(2026, 4, 10)) == 1

    db.expire_all()
    assert _status(db, overdue.id) == SubscriptionStatus.EXPIRED
    assert _status(db, ends_today.id) == SubscriptionStatus.ACTIVE
    assert _status(db, cancelled.id) == SubscriptionStatus.CANCELLED


def test_second_sweep_is_a_no_op(db, admin_caller, make_client, quarterly_plan):
    create_subscription(db, admin_caller, make_client().id, quarterly_plan.id,
                        num_users=10, start_date=date(2026, 1, 1))

    assert expire_overdue_subscriptions(db, today=date(2026, 5, 1)) == 1
    assert expire_overdue_subscriptions(db, today=date(2026, 5, 1)) == 0

    sweeps = db.query(AuditLog).filter(AuditLog.action == "expired").all()
    assert len(sweeps) == 1
    assert sweeps[0].entity_id is None
    assert sweeps[0].new_value == {"expired": 1, "as_of": "2026-05-01"}


def test_sweep_leaves_amounts_untouched(db, admin_caller, make_client, quarterly_plan):
    subscription = create_subscription(db, admin_caller, make_client().id, quarterly_plan.id,
                                       num_users=10, start_date=date(2026, 1, 1))
    expire_overdue_subscriptions(db, today=date(2026, 6, 1))
    db.refresh(subscription)
    assert subscription.final_amount == Decimal("5970.00")
    assert subscription.end_date == date(2026, 4, 1)


def test_expiry_job_registration():
    try:
        start_expiry_job()
        add_expiry_job()
        assert get_scheduler().running
        jobs = [job for job in get_scheduler().get_jobs() if job.id == EXPIRY_JOB_ID]
        assert len(jobs) == 1
        assert jobs[0].max_instances == 1
        assert jobs[0].coalesce is True
    finally:
        stop_scheduler()
