"""
Subscription expiry job.

Runs daily and moves every active subscription whose end_date has passed to
expired, as one conditional UPDATE. Rows already expired no longer match the
WHERE clause, so repeated runs are no-ops.
"""
import logging
from datetime import date, datetime, timezone
from typing import Optional
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session
from crm_billing.core.config import EXPIRY_SWEEP_HOUR, EXPIRY_SWEEP_MINUTE
from crm_billing.core.database import SessionLocal
from crm_billing.models.subscription import Subscription, SubscriptionStatus
from crm_billing.services.audit import record_audit
from crm_billing.services.scheduler.scheduler_service import get_scheduler, start_scheduler

logger = logging.getLogger(__name__)

EXPIRY_JOB_ID = "subscription_expiry"


def expire_overdue_subscriptions(db: Optional[Session] = None, today: Optional[date] = None) -> int:
    """
    Expire active subscriptions with end_date < today (UTC).

    Args:
        db: Session to use; a private one is opened and closed when omitted
        today: Sweep date, defaults to the current UTC date

    Returns:
        Number of subscriptions moved to expired
    """
    own_session = db is None
    if own_session:
        db = SessionLocal()
    today = today or datetime.now(timezone.utc).date()
    try:
        expired_count = db.query(Subscription).filter(
            Subscription.subscription_status == SubscriptionStatus.ACTIVE,
            Subscription.end_date < today,
        ).update(
            {
                Subscription.subscription_status: SubscriptionStatus.EXPIRED,
                Subscription.updated_at: datetime.now(timezone.utc),
            },
            synchronize_session=False,
        )
        if expired_count:
            record_audit(db, None, "expired", "subscription", None,
                         new_value={"expired": expired_count, "as_of": today})
        db.commit()
        logger.info(f"Subscription expiry sweep for {today}: {expired_count} expired")
        return expired_count
    except Exception as e:
        logger.error(f"Error in subscription expiry sweep: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        if own_session:
            db.close()


def add_expiry_job():
    """Add the expiry sweep to the scheduler (daily at the configured UTC time)."""
    scheduler = get_scheduler()
    scheduler.add_job(
        expire_overdue_subscriptions,
        trigger=CronTrigger(hour=EXPIRY_SWEEP_HOUR, minute=EXPIRY_SWEEP_MINUTE, timezone="UTC"),
        id=EXPIRY_JOB_ID,
        replace_existing=True,
        max_instances=1,  # Never two sweeps at once
        coalesce=True,
    )
    logger.info(f"Added subscription expiry job (daily at {EXPIRY_SWEEP_HOUR:02d}:{EXPIRY_SWEEP_MINUTE:02d} UTC)")


def start_expiry_job():
    """Start the scheduler and register the expiry job (call on app startup)."""
    start_scheduler()
    add_expiry_job()
