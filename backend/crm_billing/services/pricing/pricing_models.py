"""
Pricing model classes.
"""
from dataclasses import dataclass
from decimal import Decimal


# Cycle name -> number of months billed per cycle
BILLING_MONTHS = {
    "monthly": 1,
    "quarterly": 3,
    "half_yearly": 6,
    "yearly": 12,
}

BILLING_CYCLES = tuple(BILLING_MONTHS.keys())


@dataclass(frozen=True)
class BillingAmounts:
    """Billed amounts for one subscription period."""
    amount_paid: Decimal  # pre-discount
    discount: Decimal
    final_amount: Decimal
