"""
Payment service model classes.
"""
from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass
class PaymentFilters:
    client_id: Optional[int] = None
    subscription_id: Optional[int] = None
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None
    paid_from: Optional[date] = None
    paid_to: Optional[date] = None


@dataclass
class PaymentPage:
    rows: list
    total: int
    limit: int
    offset: int
