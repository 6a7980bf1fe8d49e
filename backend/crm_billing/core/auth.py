"""
Authentication utilities and dependencies.

Session tokens are issued elsewhere; this module only verifies them. A token
is `<urlsafe-base64 json>.<hmac-sha256 hex>` and expires SESSION_TTL_HOURS after created_at.
Verification is stateless, there is no per-process session cache.
"""
import base64
import binascii
import hashlib
import hmac
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from crm_billing.core.config import SESSION_COOKIE_NAME, SESSION_SECRET, SESSION_TTL_HOURS
from crm_billing.core.database import get_db
from crm_billing.models.user import User
from crm_billing.services.access import CallerContext, Role

logger = logging.getLogger(__name__)

__all__ = [
    'create_session',
    'verify_session',
    'get_current_user_dependency',
    'get_current_caller',
    'require_roles',
]


def _secret() -> bytes:
    return SESSION_SECRET.encode() if SESSION_SECRET else b'default-secret-change-in-prod'


def _sign(payload: str) -> str:
    return hmac.new(_secret(), payload.encode(), hashlib.sha256).hexdigest()


def create_session(user_id: int, role: str, email: Optional[str] = None) -> str:
    """Create a signed session token (used by the login service and tests)."""
    session_data = {
        'user_id': user_id,
        'email': email,
        'role': role,
        'created_at': datetime.now(timezone.utc).isoformat(),
    }
    session_json = json.dumps(session_data, sort_keys=True)
    payload = base64.urlsafe_b64encode(session_json.encode()).decode()
    return f"{payload}.{_sign(payload)}"


def verify_session(session_token: Optional[str]) -> Optional[dict]:
    """Verify signature and TTL; return session data or None."""
    if not session_token:
        return None

    parts = session_token.rsplit('.', 1)
    if len(parts) != 2:
        return None

    payload, signature = parts
    if not hmac.compare_digest(signature.encode(), _sign(payload).encode()):
        return None

    try:
        session_data = json.loads(base64.urlsafe_b64decode(payload.encode()))
        created_at = datetime.fromisoformat(session_data['created_at'])
    except (ValueError, KeyError, TypeError, binascii.Error):
        logger.warning("Rejected session token with a valid signature but malformed payload")
        return None

    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if datetime.now(timezone.utc) - created_at > timedelta(hours=SESSION_TTL_HOURS):
        return None
    return session_data


def get_current_user_dependency(
    request: Request,
    db: Session = Depends(get_db)
) -> User:
    """Dependency to get current authenticated user."""
    session_token = request.cookies.get(SESSION_COOKIE_NAME)
    if not session_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    session_data = verify_session(session_token)
    if not session_data:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session"
        )

    user = db.query(User).filter(User.id == session_data['user_id']).first()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive"
        )
    return user


def get_current_caller(
    current_user: User = Depends(get_current_user_dependency)
) -> CallerContext:
    """Dependency returning the caller identity used by the access filter."""
    if current_user.role not in Role.ALL:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role '{current_user.role}'"
        )
    return CallerContext.from_user(current_user)


def require_roles(*roles: str):
    """
    Dependency factory to require one of the given roles.
    Usage: Depends(require_roles(Role.ADMIN, Role.MANAGER))
    """
    def role_checker(caller: CallerContext = Depends(get_current_caller)) -> CallerContext:
        if caller.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(roles)}"
            )
        return caller

    return role_checker
