"""
Access filter for role-scoped queries.
"""
from crm_billing.services.access.access_models import CallerContext, Role
from crm_billing.services.access.access_filter import (
    owner_condition,
    scope_client_query,
    scope_subscription_query,
    scope_payment_query,
    can_access_client,
    ensure_client_access,
    ensure_subscription_access,
    ensure_can_write,
)

__all__ = [
    "CallerContext",
    "Role",
    "owner_condition",
    "scope_client_query",
    "scope_subscription_query",
    "scope_payment_query",
    "can_access_client",
    "ensure_client_access",
    "ensure_subscription_access",
    "ensure_can_write",
]
