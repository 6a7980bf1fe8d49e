"""
Subscription lifecycle: create, update, cancel, renew and read.
"""
from crm_billing.services.subscription.subscription_service import (
    get_subscription_by_id,
    lock_client,
    lock_subscription,
    get_subscription,
    create_subscription,
    update_subscription,
    cancel_subscription,
    renew_subscription,
    list_subscriptions,
    get_subscription_history,
    get_subscription_stats,
    UPDATABLE_FIELDS,
)
from crm_billing.services.subscription.subscription_models import (
    SubscriptionFilters,
    SubscriptionPage,
    SubscriptionStats,
)
from crm_billing.services.subscription.overlap import (
    ranges_overlap,
    find_overlapping_subscription,
    has_overlap,
    ensure_no_overlap,
)

__all__ = [
    "get_subscription_by_id",
    "lock_client",
    "lock_subscription",
    "get_subscription",
    "create_subscription",
    "update_subscription",
    "cancel_subscription",
    "renew_subscription",
    "list_subscriptions",
    "get_subscription_history",
    "get_subscription_stats",
    "UPDATABLE_FIELDS",
    "SubscriptionFilters",
    "SubscriptionPage",
    "SubscriptionStats",
    "ranges_overlap",
    "find_overlapping_subscription",
    "has_overlap",
    "ensure_no_overlap",
]
