"""
Audit logging helpers and enums.

Centralized helper to persist normalized audit records with a consistent
schema.
"""
from __future__ import annotations
from enum import Enum
from typing import Any, Optional, Dict
from sqlalchemy.orm import Session

from mbee.db import schemas
from mbee.db.repositories import audits as audit_repo


class AuditAction(str, Enum):
    # Users
    USER_CREATE = "user_create"
    USER_UPDATE = "user_update"
    USER_DELETE = "user_delete"
    USER_PASSWORD_CHANGE = "user_password_change"
    # Organization
    ORGANIZATION_CREATE = "organization_create"
    ORGANIZATION_UPDATE = "organization_update"
    ORGANIZATION_DELETE = "organization_delete"
    # Project
    PROJECT_CREATE = "project_create"
    PROJECT_UPDATE = "project_update"
    PROJECT_DELETE = "project_delete"
    PROJECT_REPLACE = "project_replace"
    # Membership
    MEMBER_ADD = "member_add"
    MEMBER_REMOVE = "member_remove"
    MEMBER_ROLE_CHANGE = "member_role_change"
    # Branch
    BRANCH_CREATE = "branch_create"
    BRANCH_UPDATE = "branch_update"
    BRANCH_DELETE = "branch_delete"
    # Element
    ELEMENT_CREATE = "element_create"
    ELEMENT_UPDATE = "element_update"
    ELEMENT_DELETE = "element_delete"
    # Artifact
    ARTIFACT_CREATE = "artifact_create"
    ARTIFACT_UPDATE = "artifact_update"
    ARTIFACT_DELETE = "artifact_delete"
    # Webhook
    WEBHOOK_CREATE = "webhook_create"
    WEBHOOK_UPDATE = "webhook_update"
    WEBHOOK_DELETE = "webhook_delete"
    WEBHOOK_TRIGGER = "webhook_trigger"
    # Login tokens
    TOKEN_CREATE = "token_create"
    TOKEN_REVOKE = "token_revoke"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


def log(
    db: Session,
    *,
    action: AuditAction | str,
    status: AuditStatus | str = AuditStatus.SUCCESS,
    target_type: str,
    target_id: Optional[str] = None,
    actor_user_id: Optional[str],
    organization_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
):
    """Central audit logging helper."""
    # Persist plain string values, not Enum reprs
    action_value = action.value if isinstance(action, AuditAction) else str(action)
    status_value = status.value if isinstance(status, AuditStatus) else str(status)
    audit_log = schemas.AuditLogCreate(
        action_type=action_value,
        status=status_value,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        metadata=metadata or {},
    )
    return audit_repo.create_audit_log(
        db,
        audit_log=audit_log,
        actor_user_id=actor_user_id,
        organization_id=organization_id,
    )


__all__ = ["AuditAction", "AuditStatus", "log"]
