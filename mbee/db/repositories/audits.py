"""
Audit log repository functions.

Entries are written in their own transaction, after the change they describe
has been committed.
"""
from __future__ import annotations

from typing import List, Optional
from sqlalchemy.orm import Session

from mbee.db import schemas, models


def create_audit_log(db: Session, audit_log: schemas.AuditLogCreate, actor_user_id: Optional[str], organization_id: Optional[str] = None):
    values = audit_log.model_dump(exclude={"metadata"})
    entry = models.AuditLog(
        **values,
        actor_user_id=actor_user_id,
        organization_id=organization_id,
        metadata_json=audit_log.metadata,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def get_audit_logs(
    db: Session,
    organization_id: Optional[str] = None,
    user_id: Optional[str] = None,
    action_type: Optional[str] = None,
    status: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[models.AuditLog]:
    """Newest first; every filter left as None is ignored."""
    filters = [
        (models.AuditLog.organization_id, organization_id),
        (models.AuditLog.actor_user_id, user_id),
        (models.AuditLog.action_type, action_type),
        (models.AuditLog.status, status),
        (models.AuditLog.target_type, target_type),
        (models.AuditLog.target_id, target_id),
    ]
    query = db.query(models.AuditLog)
    for column, value in filters:
        if value:
            query = query.filter(column == value)
    return query.order_by(models.AuditLog.created_at.desc()).offset(skip).limit(limit).all()
