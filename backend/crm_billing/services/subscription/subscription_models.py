"""
Subscription service model classes.
"""
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Optional


@dataclass
class SubscriptionFilters:
    """Optional list filters; None means 'any'."""
    subscription_status: Optional[str] = None
    payment_status: Optional[str] = None
    client_id: Optional[int] = None
    plan_id: Optional[int] = None
    billing_cycle: Optional[str] = None
    start_date_from: Optional[date] = None
    end_date_to: Optional[date] = None


@dataclass
class SubscriptionPage:
    rows: list
    total: int
    limit: int
    offset: int


@dataclass
class SubscriptionStats:
    """Counts and revenue rollups over the subscriptions a caller can see."""
    total: int = 0
    active: int = 0
    expired: int = 0
    cancelled: int = 0
    trial: int = 0
    payments: dict = field(default_factory=dict)  # paid / pending / failed / refunded
    revenue: dict = field(default_factory=dict)  # billed / collected / active_value
    expiring_in_7_days: int = 0
    expiring_in_30_days: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
