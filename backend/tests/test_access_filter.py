from datetime import date

import pytest

from crm_billing.services.access import CallerContext, Role
from crm_billing.services.catalog import list_clients, get_client_for_caller
from crm_billing.services.errors import AccessForbidden, SubscriptionNotFound
from crm_billing.services.subscription import (
    create_subscription,
    list_subscriptions,
    get_subscription,
    get_subscription_stats,
    SubscriptionFilters,
)


@pytest.fixture
def owners(make_user):
    return make_user(Role.USER), make_user(Role.USER)


@pytest.fixture
def portfolio(db, admin_caller, make_client, quarterly_plan, owners):
    """One subscription per owner."""
    alice, bob = owners
    alice_client = make_client(owner=alice)
    bob_client = make_client(owner=bob)
    alice_sub = create_subscription(db, admin_caller, alice_client.id, quarterly_plan.id,
                                    num_users=10, start_date=date(2026, 1, 1))
    bob_sub = create_subscription(db, admin_caller, bob_client.id, quarterly_plan.id,
                                  num_users=20, start_date=date(2026, 1, 1))
    return alice_sub, bob_sub


def test_admin_and_manager_see_everything(db, make_user, portfolio):
    for role in (Role.ADMIN, Role.MANAGER):
        caller = CallerContext.from_user(make_user(role))
        assert list_subscriptions(db, caller).total == 2
        assert list_clients(db, caller)[1] == 2


def test_user_sees_only_own_clients_rows(db, owners, portfolio):
    alice, _ = owners
    alice_sub, _ = portfolio
    caller = CallerContext.from_user(alice)

    page = list_subscriptions(db, caller)
    assert page.total == 1
    assert [row.id for row in page.rows] == [alice_sub.id]

    rows, total = list_clients(db, caller)
    assert total == 1 and rows[0].created_by == alice.id


def test_filters_combine_with_scope(db, owners, portfolio):
    alice, _ = owners
    _, bob_sub = portfolio
    caller = CallerContext.from_user(alice)
    page = list_subscriptions(db, caller, SubscriptionFilters(client_id=bob_sub.client_id))
    assert page.total == 0


def test_detail_of_foreign_row_is_forbidden_missing_row_not_found(db, owners, portfolio):
    alice, _ = owners
    _, bob_sub = portfolio
    caller = CallerContext.from_user(alice)

    with pytest.raises(AccessForbidden):
        get_subscription(db, caller, bob_sub.id)
    with pytest.raises(AccessForbidden):
        get_client_for_caller(db, caller, bob_sub.client_id)
    with pytest.raises(SubscriptionNotFound):
        get_subscription(db, caller, 9999)


def test_stats_are_scoped(db, admin_caller, owners, portfolio):
    alice, _ = owners
    everything = get_subscription_stats(db, admin_caller, today=date(2026, 3, 28))
    assert everything.total == 2
    assert everything.active == 2
    assert everything.payments["pending"] == 2
    assert str(everything.revenue["billed"]) == "17910.00"
    assert everything.expiring_in_7_days == 2

    own = get_subscription_stats(db, CallerContext.from_user(alice), today=date(2026, 3, 28))
    assert own.total == 1
    assert str(own.revenue["billed"]) == "5970.00"
    assert own.revenue["collected"] == 0


def test_pagination_is_bounded(db, admin_caller, portfolio):
    page = list_subscriptions(db, admin_caller, limit=1, offset=1)
    assert page.total == 2
    assert len(page.rows) == 1
    assert page.rows[0].id == portfolio[0].id
