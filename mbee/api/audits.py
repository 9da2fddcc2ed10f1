"""
Audit log API endpoints.

System admins query the whole log; org admins query the entries of their
organization.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from mbee.api.deps import get_current_user_context
from mbee.api.lookups import get_org_or_404
from mbee.api.permissions import can_manage_org
from mbee.db import schemas
from mbee.db.repositories import audits as audit_repo
from mbee.db.database import get_db

router = APIRouter(tags=["audits"])


def _adapt(logs) -> List[schemas.AuditLog]:
    # The model keeps metadata in ``metadata_json``; the schema expects ``metadata``
    return [
        schemas.AuditLog(
            id=log.id,
            action_type=log.action_type,
            status=log.status,
            target_type=log.target_type,
            target_id=log.target_id,
            reason=log.reason,
            metadata=log.metadata_json,
            organization_id=log.organization_id,
            actor_user_id=log.actor_user_id,
            created_at=log.created_at,
        )
        for log in logs
    ]


@router.get("/audits", response_model=List[schemas.AuditLog])
def list_audit_logs(
    organization_id: Optional[str] = None,
    user: Optional[str] = None,
    action_type: Optional[str] = None,
    status: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    if organization_id:
        if not can_manage_org(organization_id, current_user):
            raise HTTPException(status_code=403, detail="Forbidden")
    elif not current_user.get("is_admin"):
        raise HTTPException(status_code=403, detail="Forbidden, organization_id is required for non-admins")

    logs = audit_repo.get_audit_logs(
        db, organization_id=organization_id, user_id=user, action_type=action_type,
        status=status, target_type=target_type, target_id=target_id, skip=skip, limit=limit,
    )
    return _adapt(logs)


@router.get("/orgs/{org_id}/audits", response_model=List[schemas.AuditLog])
def list_org_audit_logs(
    org_id: str,
    user: Optional[str] = None,
    action_type: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    org = get_org_or_404(db, org_id, current_user, allow_archived=True)
    if not can_manage_org(org.id, current_user):
        raise HTTPException(status_code=403, detail="Forbidden")
    logs = audit_repo.get_audit_logs(
        db, organization_id=org.id, user_id=user, action_type=action_type,
        target_type=target_type, target_id=target_id, skip=skip, limit=limit,
    )
    return _adapt(logs)
