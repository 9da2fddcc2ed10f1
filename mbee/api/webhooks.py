"""
Webhooks API endpoints.

Webhooks attach to the server, an org, a project or a branch; managing them
requires admin rights at that level. Incoming webhooks are fired through
``POST /webhooks/trigger/{encoded_id}`` with their token in the configured
request header.
"""
import base64
import binascii
import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from mbee import events
from mbee.api.deps import (
    as_list,
    ensure_unique,
    get_current_user_context,
    get_find_options,
    split_ids,
)
from mbee.api.lookups import ensure_modifiable, get_branch_or_404, get_org_or_404, get_project_or_404
from mbee.api.permissions import can_manage_level
from mbee.api.public_data import webhook_public
from mbee.audit import AuditAction, AuditStatus, log
from mbee.db import models, schemas
from mbee.db.database import get_db
from mbee.db.repositories import projects as project_repo
from mbee.db.repositories import webhooks as webhook_repo
from mbee.db.repositories.common import FindOptions
from mbee.utils.token_crypto import verify_secret

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

# (organization_id, project, branch) with namespaced ids
Level = Tuple[Optional[str], Optional[models.Project], Optional[models.Branch]]


def _emit(db: Session, action: str, payload, actor: str, level: Level) -> None:
    org_id, project, branch = level
    events.emit(
        events.event_name("webhooks", action),
        payload,
        events.EventContext(
            db=db,
            organization_id=org_id,
            project_id=project.id if project else None,
            branch_id=branch.id if branch else None,
            actor=actor,
        ),
    )


def _resolve_level(db: Session, org: Optional[str], project: Optional[str], branch: Optional[str], current_user) -> Level:
    if branch and not project:
        raise HTTPException(status_code=400, detail="A branch level webhook requires a project")
    if project and not org:
        raise HTTPException(status_code=400, detail="A project level webhook requires an org")
    if branch:
        found = get_branch_or_404(db, org, project, branch, current_user)
        return org, project_repo.get_project(db, found.project_id), found
    if project:
        return org, get_project_or_404(db, org, project, current_user), None
    if org:
        return get_org_or_404(db, org, current_user).id, None, None
    return None, None, None


def _stored_level(db: Session, webhook: models.Webhook) -> Level:
    project = project_repo.get_project(db, webhook.project_id) if webhook.project_id else None
    branch = None
    if webhook.branch_id:
        branch = db.query(models.Branch).filter(models.Branch.id == webhook.branch_id).first()
    return webhook.organization_id, project, branch


def _require_admin(level: Level, current_user) -> None:
    org_id, project, _branch = level
    if not can_manage_level(org_id, project, current_user):
        raise HTTPException(status_code=403, detail="Admin permissions are required to manage webhooks at this level")


def _validate_triggers(triggers) -> None:
    if not triggers or any(not isinstance(t, str) or not t.strip() for t in triggers):
        raise HTTPException(status_code=400, detail="Webhook triggers must be a non-empty list of event names")


def _validate_create(item: schemas.WebhookCreate) -> None:
    _validate_triggers(item.triggers)
    if item.type == "Outgoing":
        if not item.responses:
            raise HTTPException(status_code=400, detail="Outgoing webhooks require at least one response")
        if item.token is not None or item.token_location is not None:
            raise HTTPException(status_code=400, detail="Outgoing webhooks cannot have a token or token_location")
    else:
        if not item.token or not item.token_location:
            raise HTTPException(status_code=400, detail="Incoming webhooks require a token and token_location")
        if item.responses is not None:
            raise HTTPException(status_code=400, detail="Incoming webhooks cannot have responses")


def _validate_update(webhook: models.Webhook, changes: Dict[str, Any]) -> None:
    if "triggers" in changes:
        _validate_triggers(changes["triggers"])
    if webhook.webhook_type == "Outgoing":
        if "token" in changes or "token_location" in changes:
            raise HTTPException(status_code=400, detail="Outgoing webhooks cannot have a token or token_location")
        if "responses" in changes and not changes["responses"]:
            raise HTTPException(status_code=400, detail="Outgoing webhooks require at least one response")
    else:
        if "responses" in changes:
            raise HTTPException(status_code=400, detail="Incoming webhooks cannot have responses")
        for field in ("token", "token_location"):
            if field in changes and not changes[field]:
                raise HTTPException(status_code=400, detail=f"Incoming webhooks require a {field}")


def _parse_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid webhook id [{value}]")


def _get_managed(db: Session, webhook_id: uuid.UUID, current_user) -> Tuple[models.Webhook, Level]:
    webhook = webhook_repo.get_webhook(db, webhook_id)
    if webhook is None:
        raise HTTPException(status_code=404, detail=f"Webhook [{webhook_id}] not found")
    level = _stored_level(db, webhook)
    _require_admin(level, current_user)
    return webhook, level


def _audit(db: Session, action: AuditAction, webhook_id, actor: Optional[str], level: Level, metadata=None) -> None:
    log(db, action=action, status=AuditStatus.SUCCESS, target_type="webhook", target_id=str(webhook_id),
        actor_user_id=actor, organization_id=level[0], metadata=metadata)


@router.get("")
def list_webhooks(
    org: Optional[str] = Query(default=None),
    project: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    ids: Optional[str] = Query(default=None, description="Comma separated webhook ids"),
    options: FindOptions = Depends(get_find_options),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    """List webhooks registered at exactly the given level (no params = server level)."""
    _user, current_user = user_context
    level = _resolve_level(db, org, project, branch, current_user)
    _require_admin(level, current_user)
    wanted = split_ids(ids)
    org_id, proj, br = level
    webhooks = webhook_repo.list_webhooks(
        db,
        organization_id=org_id,
        project_id=proj.id if proj else None,
        branch_id=br.id if br else None,
        webhook_ids=[_parse_uuid(i) for i in wanted] if wanted is not None else None,
        options=options,
    )
    return [webhook_public(w) for w in webhooks]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_webhooks(
    payload: Union[List[schemas.WebhookCreate], schemas.WebhookCreate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    items = as_list(payload)
    plans = []
    for item in items:
        _validate_create(item)
        level = _resolve_level(db, item.org, item.project, item.branch, current_user)
        _require_admin(level, current_user)
        plans.append((item, level))

    created = []
    for item, level in plans:
        org_id, project, branch = level
        webhook = webhook_repo.create_webhook(
            db,
            webhook_type=item.type,
            triggers=item.triggers,
            name=item.name,
            description=item.description,
            responses=[r.model_dump() for r in item.responses] if item.responses else None,
            token=item.token,
            token_location=item.token_location,
            organization_id=org_id,
            project_id=project.id if project else None,
            branch_id=branch.id if branch else None,
            custom=item.custom,
            created_by=user.username,
        )
        created.append((webhook, level))
    db.commit()

    result = []
    for webhook, level in created:
        _audit(db, AuditAction.WEBHOOK_CREATE, webhook.id, user.username, level,
               metadata={"type": webhook.webhook_type, "level": webhook.level})
        data = webhook_public(webhook)
        _emit(db, "created", data, user.username, level)
        result.append(data)
    return result


def _update_webhooks(db: Session, user, current_user, items: List[schemas.WebhookUpdate]) -> List[dict]:
    if any(i.id is None for i in items):
        raise HTTPException(status_code=400, detail="Each update must include a webhook id")
    ensure_unique([i.id for i in items], "webhook")
    pairs = []
    for item in items:
        webhook, level = _get_managed(db, item.id, current_user)
        changes = item.model_dump(exclude_unset=True)
        changes.pop("id", None)
        ensure_modifiable(webhook, changes, "webhook", str(webhook.id))
        _validate_update(webhook, changes)
        if changes.get("responses"):
            changes["responses"] = [r.model_dump() for r in item.responses]
        pairs.append((webhook, level, changes))

    for webhook, _level, changes in pairs:
        webhook_repo.update_webhook(db, webhook, changes, actor=user.username)
    db.commit()

    result = []
    for webhook, level, changes in pairs:
        _audit(db, AuditAction.WEBHOOK_UPDATE, webhook.id, user.username, level,
               metadata={"fields": sorted(changes)})
        data = webhook_public(webhook)
        _emit(db, "updated", data, user.username, level)
        result.append(data)
    return result


@router.patch("")
def update_webhooks(
    payload: Union[List[schemas.WebhookUpdate], schemas.WebhookUpdate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _update_webhooks(db, user, current_user, as_list(payload))


def _delete_webhooks(db: Session, user, current_user, webhook_ids: List[uuid.UUID]) -> List[str]:
    ensure_unique(webhook_ids, "webhook")
    found = [_get_managed(db, wid, current_user) for wid in webhook_ids]
    for webhook, _level in found:
        webhook_repo.delete_webhook(db, webhook)
    db.commit()
    removed = [str(wid) for wid in webhook_ids]
    for wid, (_webhook, level) in zip(removed, found):
        _audit(db, AuditAction.WEBHOOK_DELETE, wid, user.username, level)
        _emit(db, "deleted", wid, user.username, level)
    return removed


@router.delete("")
def delete_webhooks(
    ids: str = Query(..., description="Comma separated webhook ids"),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _delete_webhooks(db, user, current_user, [_parse_uuid(i) for i in split_ids(ids)])


def _fire_incoming(db: Session, encoded_id: str, headers, raw: bytes) -> dict:
    try:
        decoded = base64.urlsafe_b64decode(encoded_id + "=" * (-len(encoded_id) % 4)).decode("utf-8")
        webhook_id = uuid.UUID(decoded)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise HTTPException(status_code=404, detail="Webhook not found")

    webhook = webhook_repo.get_webhook(db, webhook_id)
    if webhook is None or webhook.archived or webhook.webhook_type != "Incoming":
        raise HTTPException(status_code=404, detail="Webhook not found")

    token = headers.get(webhook.token_location or "")
    if not token or not webhook.token_hash or not verify_secret(token, webhook.token_hash):
        logger.warning("webhook_trigger_denied: webhook=%s", webhook.id)
        raise HTTPException(status_code=401, detail="Invalid webhook token")

    body = None
    if raw:
        try:
            body = json.loads(raw)
        except ValueError:
            raise HTTPException(status_code=400, detail="Webhook payload must be JSON")

    level = _stored_level(db, webhook)
    org_id, project, branch = level
    context = events.EventContext(
        db=db,
        organization_id=org_id,
        project_id=project.id if project else None,
        branch_id=branch.id if branch else None,
    )
    for trigger in webhook.triggers or []:
        events.emit(trigger, body, context)
    _audit(db, AuditAction.WEBHOOK_TRIGGER, webhook.id, None, level,
           metadata={"triggers": list(webhook.triggers or [])})
    return {"triggered": list(webhook.triggers or [])}


@router.post("/trigger/{encoded_id}")
async def trigger_webhook(
    encoded_id: str,
    request: Request,
    db: Session = Depends(get_db),
):
    """Fire an incoming webhook; every trigger is emitted with the request body as payload."""
    raw = await request.body()
    # Token checks, DB access and outgoing deliveries are blocking
    return await run_in_threadpool(_fire_incoming, db, encoded_id, request.headers, raw)


@router.get("/{webhook_id}")
def get_webhook(
    webhook_id: uuid.UUID,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    webhook, _level = _get_managed(db, webhook_id, current_user)
    return webhook_public(webhook)


@router.patch("/{webhook_id}")
def update_webhook(
    webhook_id: uuid.UUID,
    payload: schemas.WebhookUpdate = Body(...),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    if payload.id not in (None, webhook_id):
        raise HTTPException(status_code=400, detail="Webhook id in body does not match id in URL")
    item = payload.model_copy(update={"id": webhook_id})
    return _update_webhooks(db, user, current_user, [item])[0]


@router.delete("/{webhook_id}")
def delete_webhook(
    webhook_id: uuid.UUID,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _delete_webhooks(db, user, current_user, [webhook_id])[0]
