"""
Background jobs: the daily subscription expiry sweep.
"""
from crm_billing.services.scheduler.scheduler_service import (
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)
from crm_billing.services.scheduler.subscription_expiry import (
    EXPIRY_JOB_ID,
    expire_overdue_subscriptions,
    add_expiry_job,
    start_expiry_job,
)

__all__ = [
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
    "EXPIRY_JOB_ID",
    "expire_overdue_subscriptions",
    "add_expiry_job",
    "start_expiry_job",
]
