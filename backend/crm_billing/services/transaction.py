"""
Unit-of-work helper for billing writes.
"""
import logging
from contextlib import contextmanager
from sqlalchemy.orm import Session
from crm_billing.services.errors import BillingError

logger = logging.getLogger(__name__)


@contextmanager
def transaction(db: Session, description: str):
    """
    Commit everything done inside the block, or roll all of it back.

    Business-rule failures are re-raised quietly; storage failures are logged
    before re-raising so no partial write is left behind either way.
    """
    try:
        yield db
        db.commit()
    except BillingError:
        db.rollback()
        raise
    except Exception as e:
        logger.error(f"Failed to {description}: {e}", exc_info=True)
        db.rollback()
        raise
