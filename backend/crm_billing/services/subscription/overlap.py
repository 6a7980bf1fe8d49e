"""
Overlap validator for a client's subscription timeline.

Two windows [s1, e1] and [s2, e2] overlap iff s1 <= e2 and s2 <= e1
(boundaries inclusive). Only active subscriptions block; cancelled, expired
and trial rows never conflict.
"""
from datetime import date
from typing import Optional
from sqlalchemy.orm import Session
from crm_billing.models.subscription import Subscription, SubscriptionStatus
from crm_billing.services.errors import OverlappingSubscription

OVERLAP_BLOCKING_STATUSES = (SubscriptionStatus.ACTIVE,)


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    return start_a <= end_b and start_b <= end_a


def find_overlapping_subscription(
    db: Session,
    client_id: int,
    start_date: date,
    end_date: date,
    exclude_subscription_id: Optional[int] = None,
) -> Optional[Subscription]:
    """Return the earliest blocking subscription intersecting the window, if any."""
    query = db.query(Subscription).filter(
        Subscription.client_id == client_id,
        Subscription.subscription_status.in_(OVERLAP_BLOCKING_STATUSES),
        Subscription.start_date <= end_date,
        Subscription.end_date >= start_date,
    )
    if exclude_subscription_id is not None:
        query = query.filter(Subscription.id != exclude_subscription_id)
    return query.order_by(Subscription.start_date.asc(), Subscription.id.asc()).first()


def has_overlap(
    db: Session,
    client_id: int,
    start_date: date,
    end_date: date,
    exclude_subscription_id: Optional[int] = None,
) -> bool:
    return find_overlapping_subscription(
        db, client_id, start_date, end_date, exclude_subscription_id
    ) is not None


def ensure_no_overlap(
    db: Session,
    client_id: int,
    start_date: date,
    end_date: date,
    exclude_subscription_id: Optional[int] = None,
) -> None:
    """Raise OverlappingSubscription naming the conflicting row."""
    conflict = find_overlapping_subscription(
        db, client_id, start_date, end_date, exclude_subscription_id
    )
    if conflict is not None:
        raise OverlappingSubscription(
            client_id=client_id,
            conflicting_subscription_id=conflict.id,
            start_date=start_date,
            end_date=end_date,
        )
