"""
Database models.
"""
from crm_billing.models.user import User
from crm_billing.models.client import Client, ClientStatus
from crm_billing.models.plan import Plan
from crm_billing.models.subscription import Subscription, SubscriptionStatus, PaymentStatus
from crm_billing.models.payment import Payment, PAYMENT_METHODS
from crm_billing.models.audit_log import AuditLog

__all__ = [
    "User",
    "Client",
    "ClientStatus",
    "Plan",
    "Subscription",
    "SubscriptionStatus",
    "PaymentStatus",
    "Payment",
    "PAYMENT_METHODS",
    "AuditLog",
]
