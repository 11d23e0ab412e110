"""
Audit and security-event writers.

Each writer adds one row and commits. A failed write is rolled back and
logged; it never propagates to the caller, so auditing cannot fail a
transfer or a review that has already been committed.
"""
import inspect
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.models.audit_log import AuditLog
from app.models.security_event import SecurityEvent
from app.models.user import utcnow

logger = logging.getLogger(__name__)


async def _maybe_await(result):
    if inspect.isawaitable(result):
        return await result
    return result


async def _persist(db, row):
    db.add(row)
    try:
        await _maybe_await(db.commit())
    except SQLAlchemyError as e:
        logger.warning("Audit write failed (%s): %s", type(row).__name__, e)
        try:
            await _maybe_await(db.rollback())
        except SQLAlchemyError:
            logger.warning("Rollback after failed audit write also failed")
        return None
    return row


async def log_audit_event(db, user_id: Optional[int], action: str, details: Optional[str] = None):
    log = AuditLog(user_id=user_id, action=action, details=details, timestamp=utcnow())
    return await _persist(db, log)


async def log_transaction(db, user_id: int, transaction_id: int, action: str, details: Optional[str] = None):
    log = AuditLog(
        user_id=user_id,
        action=f"transaction_{action}",
        details=f"Transaction ID: {transaction_id}. {details or ''}".strip(),
        timestamp=utcnow(),
    )
    return await _persist(db, log)


async def log_admin_action(db, user_id: int, action: str, details: Optional[str] = None):
    log = AuditLog(user_id=user_id, action=f"admin_{action}", details=details, timestamp=utcnow())
    return await _persist(db, log)


async def log_security_event(
    db,
    user_id: Optional[int],
    event_type: str,
    description: str,
    risk_level: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
):
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        description=description,
        ip_address=ip_address,
        user_agent=user_agent,
        risk_level=risk_level,
        meta=metadata or {},
        created_at=utcnow(),
    )
    return await _persist(db, event)
