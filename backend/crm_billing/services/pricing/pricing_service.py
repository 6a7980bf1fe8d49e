"""
Pricing calculator and billing-period arithmetic.

amount_paid  = price_per_user x num_users x billing_months
final_amount = amount_paid - discount

Pure functions: nothing here reads or writes the database, so callers must
re-run compute_amounts whenever users, discount or the plan's pricing change.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Union
from dateutil.relativedelta import relativedelta
from crm_billing.services.errors import OutOfRangeUsers, InvalidDiscount
from crm_billing.services.pricing.pricing_models import BillingAmounts, BILLING_MONTHS

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Optional[Number]) -> Decimal:
    """Convert to a 2-decimal Decimal (floats go through str to avoid binary noise)."""
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT)


def check_user_bounds(plan, num_users: int) -> None:
    """Raise OutOfRangeUsers unless plan.min_users <= num_users <= plan.max_users."""
    if num_users < plan.min_users or num_users > plan.max_users:
        raise OutOfRangeUsers(
            plan_id=plan.id,
            plan_name=plan.name,
            num_users=num_users,
            min_users=plan.min_users,
            max_users=plan.max_users,
        )


def compute_amounts(plan, num_users: int, discount: Optional[Number] = None) -> BillingAmounts:
    """
    Compute billed amounts for a plan and user count.

    Args:
        plan: Plan (price_per_user, billing_months, min_users, max_users)
        num_users: Number of users billed
        discount: Flat discount in currency units (>= 0)

    Returns:
        BillingAmounts
    """
    check_user_bounds(plan, num_users)

    discount_amount = to_money(discount)
    if discount_amount < 0:
        raise InvalidDiscount(discount)

    amount_paid = to_money(to_money(plan.price_per_user) * num_users * plan.billing_months)
    final_amount = amount_paid - discount_amount

    if final_amount < 0:
        # Not clamped; surfaced so the operator can correct the discount
        logger.warning(
            f"Discount {discount_amount} exceeds billed amount {amount_paid} "
            f"for plan {plan.id} with {num_users} users"
        )

    return BillingAmounts(
        amount_paid=amount_paid,
        discount=discount_amount,
        final_amount=final_amount,
    )


def months_for_cycle(billing_cycle: str) -> int:
    """Number of months in a billing cycle."""
    try:
        return BILLING_MONTHS[billing_cycle]
    except KeyError:
        raise ValueError(f"Unknown billing cycle: {billing_cycle}")


def advance_billing_period(start: date, billing_months: int) -> date:
    """
    Move a date forward by whole calendar months.

    Month-end dates clamp to the last valid day (Jan 31 + 1 month -> Feb 28/29).
    """
    return start + relativedelta(months=billing_months)
