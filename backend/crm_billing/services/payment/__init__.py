"""
Payments recorded against subscriptions.
"""
from crm_billing.services.payment.payment_service import (
    get_payment_by_id,
    record_payment,
    update_payment,
    list_payments,
    PAYMENT_UPDATABLE_FIELDS,
)
from crm_billing.services.payment.payment_models import PaymentFilters, PaymentPage

__all__ = [
    "get_payment_by_id",
    "record_payment",
    "update_payment",
    "list_payments",
    "PAYMENT_UPDATABLE_FIELDS",
    "PaymentFilters",
    "PaymentPage",
]
