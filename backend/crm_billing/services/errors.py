"""
Billing error taxonomy.

Every business failure raised by the services is a BillingError carrying a
stable code, the HTTP status the API should answer with, and a context dict
with the ids/bounds a caller needs to correct the request.
"""
from typing import Any, Optional


class BillingError(Exception):
    code = "billing_error"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message, **self.context}


# Validation errors (recoverable, never logged as failures)

class ValidationError(BillingError):
    code = "validation_error"
    status_code = 422


class OutOfRangeUsers(ValidationError):
    code = "out_of_range_users"

    def __init__(self, plan_id: int, plan_name: str, num_users: int, min_users: int, max_users: int):
        bound = "min_users" if num_users < min_users else "max_users"
        if bound == "min_users":
            message = f"Minimum {min_users} users required for {plan_name} plan"
        else:
            message = f"Maximum {max_users} users allowed for {plan_name} plan"
        super().__init__(
            message,
            plan_id=plan_id,
            plan_name=plan_name,
            num_users=num_users,
            min_users=min_users,
            max_users=max_users,
            bound=bound,
        )


class InvalidDateRange(ValidationError):
    code = "invalid_date_range"

    def __init__(self, start_date, end_date):
        super().__init__(
            f"end_date {end_date} must be after start_date {start_date}",
            start_date=str(start_date),
            end_date=str(end_date),
        )


class InvalidDiscount(ValidationError):
    code = "invalid_discount"

    def __init__(self, discount):
        super().__init__(f"Discount cannot be negative (got {discount})", discount=str(discount))


class InvalidStatusTransition(ValidationError):
    code = "invalid_status_transition"

    def __init__(self, subscription_id: Optional[int], from_status: Optional[str], to_status: str):
        super().__init__(
            f"Subscription status cannot move from '{from_status or 'none'}' to '{to_status}' here",
            subscription_id=subscription_id,
            from_status=from_status,
            to_status=to_status,
        )


class InvalidPlanDefinition(ValidationError):
    code = "invalid_plan_definition"


# Not-found errors

class NotFoundError(BillingError):
    code = "not_found"
    status_code = 404


class ClientNotFound(NotFoundError):
    code = "client_not_found"

    def __init__(self, client_id: int):
        super().__init__(f"Client {client_id} not found", client_id=client_id)


class PlanNotFound(NotFoundError):
    code = "plan_not_found"

    def __init__(self, plan_id: int):
        super().__init__(f"Plan {plan_id} not found", plan_id=plan_id)


class SubscriptionNotFound(NotFoundError):
    code = "subscription_not_found"

    def __init__(self, subscription_id: int):
        super().__init__(f"Subscription {subscription_id} not found", subscription_id=subscription_id)


class PaymentNotFound(NotFoundError):
    code = "payment_not_found"

    def __init__(self, payment_id: int):
        super().__init__(f"Payment {payment_id} not found", payment_id=payment_id)


# Conflict errors (business-rule violations)

class ConflictError(BillingError):
    code = "conflict"
    status_code = 409


class PlanInactive(ConflictError):
    code = "plan_inactive"

    def __init__(self, plan_id: int, plan_name: Optional[str] = None):
        super().__init__(
            f"Plan {plan_name or plan_id} is not active",
            plan_id=plan_id,
        )


class ClientInactive(ConflictError):
    code = "client_inactive"

    def __init__(self, client_id: int, status: str):
        super().__init__(
            f"Client {client_id} is {status}; only active clients can be subscribed",
            client_id=client_id,
            client_status=status,
        )


class OverlappingSubscription(ConflictError):
    code = "overlapping_subscription"

    def __init__(self, client_id: int, conflicting_subscription_id: int, start_date, end_date):
        super().__init__(
            f"Client {client_id} already has active subscription {conflicting_subscription_id} "
            f"overlapping {start_date}..{end_date}",
            client_id=client_id,
            conflicting_subscription_id=conflicting_subscription_id,
            start_date=str(start_date),
            end_date=str(end_date),
        )


class AlreadyCancelled(ConflictError):
    code = "already_cancelled"

    def __init__(self, subscription_id: int):
        super().__init__(f"Subscription {subscription_id} is already cancelled", subscription_id=subscription_id)


class CannotRenewCancelled(ConflictError):
    code = "cannot_renew_cancelled"

    def __init__(self, subscription_id: int):
        super().__init__(f"Cannot renew cancelled subscription {subscription_id}", subscription_id=subscription_id)


class SubscriptionCancelled(ConflictError):
    code = "subscription_cancelled"

    def __init__(self, subscription_id: int):
        super().__init__(
            f"Subscription {subscription_id} is cancelled and can no longer be modified",
            subscription_id=subscription_id,
        )


class DuplicatePaymentReference(ConflictError):
    code = "duplicate_payment_reference"

    def __init__(self, transaction_id: Optional[str], receipt_number: Optional[str]):
        super().__init__(
            "A payment with this transaction id or receipt number already exists",
            transaction_id=transaction_id,
            receipt_number=receipt_number,
        )


class DuplicateClientEmail(ConflictError):
    code = "duplicate_client_email"

    def __init__(self, email: Optional[str]):
        super().__init__("Another client with this email address already exists", field="email", email=email)


class DuplicatePlanName(ConflictError):
    code = "duplicate_plan_name"

    def __init__(self, name: str):
        super().__init__(f"A plan named '{name}' already exists", field="name", name=name)


# Authorization errors

class AccessForbidden(BillingError):
    code = "access_forbidden"
    status_code = 403

    def __init__(self, message: str = "You do not have permission to access this resource", **context: Any):
        super().__init__(message, **context)
