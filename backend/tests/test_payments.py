from datetime import date
from decimal import Decimal

import pytest

from crm_billing.models.subscription import SubscriptionStatus, PaymentStatus
from crm_billing.services.access import CallerContext, Role
from crm_billing.services.errors import (
    AccessForbidden,
    DuplicatePaymentReference,
    SubscriptionNotFound,
    ValidationError,
)
from crm_billing.services.payment import record_payment, update_payment, list_payments, PaymentFilters
from crm_billing.services.subscription import create_subscription, cancel_subscription, get_subscription_history


@pytest.fixture
def subscription(db, admin_caller, make_client, quarterly_plan):
    return create_subscription(db, admin_caller, make_client().id, quarterly_plan.id,
                               num_users=10, start_date=date(2026, 1, 1))


def test_paid_payment_settles_subscription(db, admin_caller, subscription):
    payment = record_payment(db, admin_caller, subscription.id, "upi",
                             payment_status=PaymentStatus.PAID, transaction_id="UPI-1")

    assert payment.amount == Decimal("5970.00")
    assert payment.client_id == subscription.client_id
    assert payment.currency == "INR"
    assert payment.payment_date is not None

    db.refresh(subscription)
    assert subscription.payment_status == PaymentStatus.PAID
    assert subscription.last_payment_at is not None

    actions = [entry.action for entry in get_subscription_history(db, admin_caller, subscription.id)]
    assert actions == ["payment_received", "created"]


def test_pending_payment_leaves_subscription_alone(db, admin_caller, subscription):
    record_payment(db, admin_caller, subscription.id, "bank_transfer", amount=Decimal("1000"))
    db.refresh(subscription)
    assert subscription.payment_status == PaymentStatus.PENDING
    assert subscription.last_payment_at is None


def test_marking_payment_paid_later_settles_subscription(db, admin_caller, subscription):
    payment = record_payment(db, admin_caller, subscription.id, "card")
    update_payment(db, admin_caller, payment.id, {"payment_status": PaymentStatus.PAID})
    db.refresh(subscription)
    assert subscription.payment_status == PaymentStatus.PAID


def test_paid_payment_reactivates_expired_subscription(db, admin_caller, subscription):
    subscription.subscription_status = SubscriptionStatus.EXPIRED
    db.commit()
    record_payment(db, admin_caller, subscription.id, "cash", payment_status=PaymentStatus.PAID)
    db.refresh(subscription)
    assert subscription.subscription_status == SubscriptionStatus.ACTIVE


def test_paid_payment_does_not_revive_cancelled_subscription(db, admin_caller, subscription):
    cancel_subscription(db, admin_caller, subscription.id)
    record_payment(db, admin_caller, subscription.id, "cash", payment_status=PaymentStatus.PAID)
    db.refresh(subscription)
    assert subscription.subscription_status == SubscriptionStatus.CANCELLED
    assert subscription.payment_status == PaymentStatus.PAID


def test_duplicate_transaction_id_rejected(db, admin_caller, subscription):
    record_payment(db, admin_caller, subscription.id, "upi", transaction_id="UPI-9")
    with pytest.raises(DuplicatePaymentReference):
        record_payment(db, admin_caller, subscription.id, "upi", transaction_id="UPI-9")
    assert list_payments(db, admin_caller).total == 1


def test_invalid_method_and_amount(db, admin_caller, subscription):
    with pytest.raises(ValidationError):
        record_payment(db, admin_caller, subscription.id, "cheque")
    with pytest.raises(ValidationError):
        record_payment(db, admin_caller, subscription.id, "upi", amount=Decimal("-5"))


def test_unknown_subscription(db, admin_caller):
    with pytest.raises(SubscriptionNotFound):
        record_payment(db, admin_caller, 404, "upi")


def test_user_role_cannot_record_but_sees_own_payments(db, admin_caller, make_user, make_client, quarterly_plan):
    owner = make_user(Role.USER)
    own = create_subscription(db, admin_caller, make_client(owner=owner).id, quarterly_plan.id,
                              num_users=10, start_date=date(2026, 1, 1))
    other = create_subscription(db, admin_caller, make_client().id, quarterly_plan.id,
                                num_users=10, start_date=date(2026, 1, 1))
    record_payment(db, admin_caller, own.id, "upi")
    record_payment(db, admin_caller, other.id, "upi")

    caller = CallerContext.from_user(owner)
    with pytest.raises(AccessForbidden):
        record_payment(db, caller, own.id, "upi")

    page = list_payments(db, caller)
    assert page.total == 1
    assert page.rows[0].subscription_id == own.id
    assert list_payments(db, admin_caller, PaymentFilters(subscription_id=other.id)).total == 1
