"""
Subscription model: a billing period binding one client to one plan.
"""
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Numeric, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from crm_billing.core.database import Base


class SubscriptionStatus:
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    ALL = (TRIAL, ACTIVE, EXPIRED, CANCELLED)


class PaymentStatus:
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"
    REFUNDED = "refunded"

    ALL = (PAID, PENDING, FAILED, REFUNDED)


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey('plans.id'), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    trial_ends_at = Column(Date, nullable=True)

    # Copied from the plan at creation time (or on plan change)
    billing_cycle = Column(String(20), nullable=False)
    billing_months = Column(Integer, nullable=False)

    num_users = Column(Integer, nullable=False)
    amount_paid = Column(Numeric(10, 2), nullable=False)  # price_per_user x num_users x billing_months
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    final_amount = Column(Numeric(10, 2), nullable=False)  # amount_paid - discount

    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING, index=True)
    subscription_status = Column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE, index=True)
    auto_renew = Column(Boolean, nullable=False, default=False)

    last_payment_at = Column(DateTime(timezone=True), nullable=True)
    next_payment_date = Column(Date, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_reason = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="subscriptions")
    plan = relationship("Plan")
    payments = relationship("Payment", back_populates="subscription")

    __table_args__ = (
        Index('idx_subscriptions_client_window', 'client_id', 'subscription_status', 'start_date', 'end_date'),
        Index('idx_subscriptions_status_end', 'subscription_status', 'end_date'),
    )
