"""
Pricing calculator for subscription billing.
"""
from crm_billing.services.pricing.pricing_service import (
    compute_amounts,
    check_user_bounds,
    months_for_cycle,
    advance_billing_period,
    to_money,
)
from crm_billing.services.pricing.pricing_models import (
    BillingAmounts,
    BILLING_MONTHS,
    BILLING_CYCLES,
)

__all__ = [
    "compute_amounts",
    "check_user_bounds",
    "months_for_cycle",
    "advance_billing_period",
    "to_money",
    "BillingAmounts",
    "BILLING_MONTHS",
    "BILLING_CYCLES",
]
