"""Audit events: every grant and tree mutation, plus integrity findings.

Each event goes two places: an AuditLog row staged on the caller's session
(committed or rolled back together with the change it describes) and a
structured record on the ``orgscope.audit`` logger for whatever sink the
deployment ships logs to.

Usage in service layer:
    audit_service.log(db, actor_id="abc", action="grant.created", resource_type="grant",
                      resource_id=grant.id, details={"role": "admin"})
"""

import json
import logging
from datetime import timedelta
from typing import Optional

import sqlalchemy.exc
from sqlalchemy.orm import Session

from ..core.clock import utcnow
from ..models.user import AuditLog

logger = logging.getLogger(__name__)
event_logger = logging.getLogger("orgscope.audit")

NODE_CREATED = "node.created"
NODE_UPDATED = "node.updated"
NODE_MOVED = "node.moved"
NODE_DELETED = "node.deleted"
GRANT_CREATED = "grant.created"
GRANT_REVOKED = "grant.revoked"
GRANT_UPDATED = "grant.updated"
MEMBER_CREATED = "member.created"
INTEGRITY_ISSUE = "hierarchy.integrity_issue"


def log(
    db: Session,
    actor_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[dict] = None,
    ip_address: Optional[str] = None,
) -> None:
    """Stage an audit row on *db* and emit the matching log record.

    Does not commit. The row belongs to the caller's unit of work, so an
    aborted mutation leaves no audit trace behind.
    """
    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=json.dumps(details, default=str) if details else None,
        ip_address=ip_address,
    )
    db.add(entry)
    event_logger.info(
        action,
        extra={
            "event": action,
            "actor_id": actor_id,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "details": details or {},
        },
    )


def get_recent(db: Session, limit: int = 100) -> list[AuditLog]:
    """Get the most recent audit log entries."""
    return (
        db.query(AuditLog)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )


def get_by_resource(db: Session, resource_type: str, resource_id: str, limit: int = 100) -> list[AuditLog]:
    """Get audit log entries for a specific resource."""
    return (
        db.query(AuditLog)
        .filter(AuditLog.resource_type == resource_type, AuditLog.resource_id == resource_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )


def purge_old_entries(db: Session, days: int = 365) -> int:
    """Delete audit log entries older than `days`. Returns count of deleted rows.

    Skipped when days <= 0 (keep forever). Never raises; logs failures.
    """
    if days <= 0:
        return 0

    cutoff = utcnow() - timedelta(days=days)
    try:
        count = db.query(AuditLog).filter(AuditLog.created_at < cutoff).delete()
        db.commit()
        return count
    except sqlalchemy.exc.SQLAlchemyError as e:
        logger.warning("Failed to purge audit log: %s", e)
        db.rollback()
        return 0
