"""
Audit trail helpers.

Audit rows are added to the caller's session and committed together with
the change they describe.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from sqlalchemy.orm import Session
from crm_billing.models.audit_log import AuditLog


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def record_audit(
    db: Session,
    user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    old_value: Optional[dict] = None,
    new_value: Optional[dict] = None,
) -> AuditLog:
    """Add an audit row to the current transaction (no commit)."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_value=_jsonable(old_value) if old_value is not None else None,
        new_value=_jsonable(new_value) if new_value is not None else None,
    )
    db.add(entry)
    return entry


def get_entity_history(db: Session, entity_type: str, entity_id: int) -> list[AuditLog]:
    """Audit rows for one entity, newest first."""
    return db.query(AuditLog).filter(
        AuditLog.entity_type == entity_type,
        AuditLog.entity_id == entity_id,
    ).order_by(AuditLog.id.desc()).all()
