"""
Payment model: a financial event recorded against a subscription.
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from crm_billing.core.database import Base


PAYMENT_METHODS = ("upi", "bank_transfer", "card", "cash", "razorpay")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    subscription_id = Column(Integer, ForeignKey('subscriptions.id'), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="INR")
    payment_method = Column(String(20), nullable=False, default="upi")
    payment_status = Column(String(20), nullable=False, default="pending", index=True)
    transaction_id = Column(String(255), unique=True, nullable=True)
    receipt_number = Column(String(50), unique=True, nullable=True)
    failure_reason = Column(String(255), nullable=True)
    payment_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    subscription = relationship("Subscription", back_populates="payments")
    client = relationship("Client")
