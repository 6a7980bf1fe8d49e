"""
Plan model: a priced, reusable subscription template.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, Text, JSON, CheckConstraint
from sqlalchemy.sql import func
from crm_billing.core.database import Base


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)

    price_per_user = Column(Numeric(10, 2), nullable=False)  # INR
    # billing_cycle: 'monthly', 'quarterly', 'half_yearly', 'yearly'
    billing_cycle = Column(String(20), nullable=False)
    billing_months = Column(Integer, nullable=False)  # must agree with billing_cycle (1/3/6/12)
    billing_type = Column(String(20), nullable=False, default='prepaid')  # 'prepaid' or 'postpaid'

    min_users = Column(Integer, nullable=False, default=5)
    max_users = Column(Integer, nullable=False, default=500)

    features = Column(JSON, nullable=False, default=list)
    # module_access: { "attendance": true, "payroll": false, ... }
    module_access = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True, index=True)  # Soft delete

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('min_users <= max_users', name='ck_plans_user_bounds'),
    )
