"""
Webhook repository functions.
"""
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from mbee.db import models
from mbee.db.repositories.common import FindOptions, apply_find_options
from mbee.utils import token_crypto
from mbee.utils.merge import deep_merge

# Shown in place of stored basic-auth passwords
MASKED_PASSWORD = "********"


def get_webhook(db: Session, webhook_id: uuid.UUID) -> Optional[models.Webhook]:
    return db.query(models.Webhook).filter(models.Webhook.id == webhook_id).first()


def list_webhooks(
    db: Session,
    *,
    organization_id: Optional[str] = None,
    project_id: Optional[str] = None,
    branch_id: Optional[str] = None,
    webhook_ids: Optional[List[uuid.UUID]] = None,
    options: Optional[FindOptions] = None,
) -> List[models.Webhook]:
    """List webhooks registered exactly at the given level."""
    query = db.query(models.Webhook).filter(
        models.Webhook.organization_id == organization_id if organization_id else models.Webhook.organization_id.is_(None),
        models.Webhook.project_id == project_id if project_id else models.Webhook.project_id.is_(None),
        models.Webhook.branch_id == branch_id if branch_id else models.Webhook.branch_id.is_(None),
    )
    if webhook_ids is not None:
        query = query.filter(models.Webhook.id.in_(webhook_ids))
    query = query.order_by(models.Webhook.created_at)
    return apply_find_options(query, models.Webhook, options).all()


def create_webhook(
    db: Session,
    *,
    webhook_type: str,
    triggers: List[str],
    name: Optional[str] = None,
    description: Optional[str] = None,
    responses: Optional[List[Dict[str, Any]]] = None,
    token: Optional[str] = None,
    token_location: Optional[str] = None,
    organization_id: Optional[str] = None,
    project_id: Optional[str] = None,
    branch_id: Optional[str] = None,
    custom: Optional[Dict[str, Any]] = None,
    created_by: Optional[str] = None,
) -> models.Webhook:
    cls = models.WEBHOOK_TYPES[webhook_type]
    webhook = cls(
        name=name,
        description=description,
        triggers=list(triggers),
        responses=responses if webhook_type == "Outgoing" else None,
        token_hash=token_crypto.hash_secret(token) if token else None,
        token_location=token_location,
        organization_id=organization_id,
        project_id=project_id,
        branch_id=branch_id,
        custom=custom or {},
        created_by=created_by,
        last_modified_by=created_by,
    )
    db.add(webhook)
    db.flush()
    return webhook


def _keep_masked_passwords(stored: List[Dict[str, Any]], incoming: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Put stored passwords back where a client echoed the masked value."""
    known = {
        (r.get("url"), r["auth"].get("username")): r["auth"].get("password")
        for r in stored
        if r.get("auth")
    }
    result = []
    for response in incoming:
        auth = response.get("auth")
        if auth and auth.get("password") == MASKED_PASSWORD:
            original = known.get((response.get("url"), auth.get("username")))
            if original is not None:
                response = {**response, "auth": {**auth, "password": original}}
        result.append(response)
    return result


def update_webhook(db: Session, webhook: models.Webhook, changes: Dict[str, Any], *, actor: str) -> models.Webhook:
    for field in ("name", "description", "token_location"):
        if field in changes:
            setattr(webhook, field, changes[field])
    if changes.get("triggers") is not None:
        webhook.triggers = list(changes["triggers"])
    if changes.get("responses") is not None:
        webhook.responses = _keep_masked_passwords(webhook.responses or [], changes["responses"])
    if changes.get("token"):
        webhook.token_hash = token_crypto.hash_secret(changes["token"])
    if changes.get("custom") is not None:
        webhook.custom = deep_merge(webhook.custom, changes["custom"])
    if changes.get("archived") is not None:
        webhook.mark_archived(bool(changes["archived"]), actor)
    webhook.last_modified_by = actor
    db.flush()
    return webhook


def delete_webhook(db: Session, webhook: models.Webhook) -> None:
    db.delete(webhook)
    db.flush()


def find_listeners(
    db: Session,
    event: str,
    *,
    organization_id: Optional[str] = None,
    project_id: Optional[str] = None,
    branch_id: Optional[str] = None,
) -> List[models.OutgoingWebhook]:
    """Outgoing webhooks whose level encloses the event scope and whose triggers include ``event``."""
    W = models.OutgoingWebhook
    scopes = [W.organization_id.is_(None)]
    if organization_id:
        scopes.append(and_(W.organization_id == organization_id, W.project_id.is_(None)))
    if project_id:
        scopes.append(and_(W.project_id == project_id, W.branch_id.is_(None)))
    if branch_id:
        scopes.append(W.branch_id == branch_id)
    candidates = (
        db.query(W)
        .filter(W.archived.is_(False), or_(*scopes))
        .order_by(W.created_at)
        .all()
    )
    # JSON containment differs by dialect; triggers lists are short
    return [w for w in candidates if event in (w.triggers or [])]
