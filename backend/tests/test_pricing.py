from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from crm_billing.services.errors import OutOfRangeUsers, InvalidDiscount
from crm_billing.services.pricing import (
    compute_amounts,
    advance_billing_period,
    months_for_cycle,
    to_money,
)


def _plan(price="199.00", months=3, min_users=5, max_users=100):
    return SimpleNamespace(
        id=1,
        name="Silver",
        price_per_user=Decimal(price),
        billing_months=months,
        min_users=min_users,
        max_users=max_users,
    )


def test_amount_is_price_times_users_times_months():
    amounts = compute_amounts(_plan(), 20)
    assert amounts.amount_paid == Decimal("11940.00")
    assert amounts.discount == Decimal("0.00")
    assert amounts.final_amount == Decimal("11940.00")


def test_discount_reduces_final_amount_only():
    amounts = compute_amounts(_plan(), 20, Decimal("940"))
    assert amounts.amount_paid == Decimal("11940.00")
    assert amounts.final_amount == Decimal("11000.00")


def test_same_inputs_give_same_amounts():
    assert compute_amounts(_plan(), 7, "10.5") == compute_amounts(_plan(), 7, "10.5")


def test_float_price_has_no_binary_noise():
    amounts = compute_amounts(_plan(price="0.10", months=1, min_users=1), 3)
    assert amounts.amount_paid == Decimal("0.30")
    assert to_money(0.1) == Decimal("0.10")


def test_discount_larger_than_amount_is_not_clamped():
    amounts = compute_amounts(_plan(price="10", months=1), 5, 100)
    assert amounts.final_amount == Decimal("-50.00")


def test_negative_discount_rejected():
    with pytest.raises(InvalidDiscount):
        compute_amounts(_plan(), 20, Decimal("-1"))


@pytest.mark.parametrize("num_users,bound", [(4, "min_users"), (101, "max_users")])
def test_user_count_outside_plan_bounds(num_users, bound):
    with pytest.raises(OutOfRangeUsers) as exc_info:
        compute_amounts(_plan(), num_users)
    assert exc_info.value.context["bound"] == bound
    assert exc_info.value.status_code == 422


def test_user_bounds_are_inclusive():
    assert compute_amounts(_plan(), 5).amount_paid == Decimal("2985.00")
    assert compute_amounts(_plan(), 100).amount_paid == Decimal("59700.00")


def test_minimum_users_message_names_plan():
    with pytest.raises(OutOfRangeUsers) as exc_info:
        compute_amounts(_plan(), 2)
    assert str(exc_info.value) == "Minimum 5 users required for Silver plan"


def test_advance_by_calendar_months():
    assert advance_billing_period(date(2026, 1, 1), 3) == date(2026, 4, 1)
    assert advance_billing_period(date(2026, 1, 31), 1) == date(2026, 2, 28)
    assert advance_billing_period(date(2027, 12, 31), 2) == date(2028, 2, 29)


def test_months_for_cycle():
    assert months_for_cycle("half_yearly") == 6
    with pytest.raises(ValueError):
        months_for_cycle("weekly")
