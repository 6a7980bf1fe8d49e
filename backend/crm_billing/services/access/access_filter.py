"""
Role-based row filtering for clients, subscriptions and payments.

Admins and managers see every row. The restricted 'user' role only sees rows
whose owning client was created by that user; subscriptions and payments are
joined through their client. All list, detail and statistics queries go
through these helpers instead of repeating the ownership check.
"""
from sqlalchemy.orm import Query
from crm_billing.models.client import Client
from crm_billing.models.subscription import Subscription
from crm_billing.models.payment import Payment
from crm_billing.services.access.access_models import CallerContext, Role
from crm_billing.services.errors import AccessForbidden


def owner_condition(caller: CallerContext):
    """SQL condition restricting rows to clients owned by the caller, or None if unrestricted."""
    if not caller.is_restricted:
        return None
    return Client.created_by == caller.user_id


def scope_client_query(query: Query, caller: CallerContext) -> Query:
    """Narrow a query over Client to what the caller may see."""
    condition = owner_condition(caller)
    if condition is None:
        return query
    return query.filter(condition)


def scope_subscription_query(query: Query, caller: CallerContext) -> Query:
    """Narrow a query over Subscription (joined through its client) to what the caller may see."""
    condition = owner_condition(caller)
    if condition is None:
        return query
    return query.join(Client, Subscription.client_id == Client.id).filter(condition)


def scope_payment_query(query: Query, caller: CallerContext) -> Query:
    """Narrow a query over Payment (joined through its client) to what the caller may see."""
    condition = owner_condition(caller)
    if condition is None:
        return query
    return query.join(Client, Payment.client_id == Client.id).filter(condition)


def can_access_client(caller: CallerContext, client: Client) -> bool:
    if not caller.is_restricted:
        return True
    return client.created_by == caller.user_id


def ensure_client_access(caller: CallerContext, client: Client) -> None:
    """Raise AccessForbidden when the client exists but belongs to someone else."""
    if not can_access_client(caller, client):
        raise AccessForbidden(
            "You do not have permission to access this client",
            client_id=client.id,
        )


def ensure_subscription_access(caller: CallerContext, subscription: Subscription) -> None:
    if not can_access_client(caller, subscription.client):
        raise AccessForbidden(
            "You do not have permission to access this subscription",
            subscription_id=subscription.id,
        )


def ensure_can_write(caller: CallerContext) -> None:
    """Billing mutations are limited to admins and managers."""
    if caller.role not in Role.WRITERS:
        raise AccessForbidden(
            "Admin or manager role required",
            role=caller.role,
        )
