"""
Audit log model for tracking changes to billing records.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from crm_billing.core.database import Base


class AuditLog(Base):
    """Audit trail row; with in-place renewals this is the subscription's history."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)  # None for system jobs
    action = Column(String(100), nullable=False, index=True)  # 'created', 'updated', 'cancelled', 'renewed', ...
    entity_type = Column(String(50), nullable=False, index=True)  # 'subscription', 'payment', 'plan', ...
    entity_id = Column(Integer, nullable=True, index=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    user = relationship("User", foreign_keys=[user_id])
