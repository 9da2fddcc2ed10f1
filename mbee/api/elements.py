"""
Elements API endpoints.

Elements are the model data of a branch. Reads need project read, every
change needs project write and a non-tag branch. Parent, source and target
references are given as plain element ids and may point at elements created
in the same request.
"""
from typing import Dict, List, Optional, Set, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from mbee import events
from mbee.api.deps import (
    as_list,
    ensure_unique,
    get_current_user_context,
    get_find_options,
    split_ids,
)
from mbee.api.lookups import ensure_modifiable, get_branch_or_404
from mbee.api.permissions import can_write_project
from mbee.api.public_data import element_public
from mbee.audit import AuditAction, AuditStatus, log
from mbee.db import models, schemas
from mbee.db.database import get_db
from mbee.db.repositories import elements as element_repo
from mbee.db.repositories import projects as project_repo
from mbee.db.repositories.common import FindOptions
from mbee.utils.ids import (
    ROOT_ELEMENT,
    ROOT_ELEMENTS,
    create_id,
    is_valid_element_id,
    last_segment,
)
from mbee.utils.jmi import convert

router = APIRouter(prefix="/orgs/{org_id}/projects/{project_id}/branches/{branch_id}/elements", tags=["elements"])

REFERENCE_FIELDS = ("parent", "source", "target")
FORMAT_PATTERN = "^jmi[123]$"


def _emit(db: Session, action: str, payload, actor: str, branch: models.Branch) -> None:
    project = project_repo.get_project(db, branch.project_id)
    events.emit(
        events.event_name("elements", action),
        payload,
        events.EventContext(
            db=db,
            organization_id=project.organization_id if project else None,
            project_id=branch.project_id,
            branch_id=branch.id,
            actor=actor,
        ),
    )


def _public(db: Session, elements: List[models.Element]) -> List[dict]:
    contains = element_repo.contains_map(db, [e.id for e in elements])
    return [element_public(e, contains.get(e.id, [])) for e in elements]


def _writable_branch(db: Session, org_id: str, project_id: str, branch_id: str, current_user) -> models.Branch:
    branch = get_branch_or_404(db, org_id, project_id, branch_id, current_user)
    project = project_repo.get_project(db, branch.project_id)
    if not can_write_project(project, current_user):
        raise HTTPException(status_code=403, detail=f"Insufficient permissions to modify elements of [{project_id}]")
    if branch.tag:
        raise HTTPException(status_code=403, detail=f"[{branch_id}] is a tag and does not allow changes to elements")
    return branch


def _check_references(db: Session, refs: Set[str], pending: Set[str]) -> None:
    """Every referenced id must exist on the branch or be created in this request."""
    missing = refs - pending
    unknown = sorted(missing - element_repo.existing_ids(db, missing))
    if unknown:
        raise HTTPException(status_code=404, detail=f"Referenced element [{last_segment(unknown[0])}] not found")


def _resolve_type(item: schemas.ElementCreate) -> str:
    has_rel = item.source is not None or item.target is not None
    element_type = item.type or ("Relationship" if has_rel else "Block")
    if element_type == "Relationship":
        if item.source is None or item.target is None:
            raise HTTPException(status_code=400, detail=f"Relationship [{item.id}] requires both source and target")
    elif has_rel:
        raise HTTPException(status_code=400, detail=f"Element [{item.id}] of type {element_type} cannot have a source or target")
    return element_type


def _fail_on_cycle(db: Session, element_ids: List[str]) -> None:
    db.flush()
    for element_id in element_ids:
        try:
            element_repo.check_no_cycle(db, element_id)
        except element_repo.CircularReferenceError as exc:
            raise HTTPException(status_code=400, detail=str(exc))


@router.get("")
def list_elements(
    org_id: str,
    project_id: str,
    branch_id: str,
    ids: Optional[str] = Query(default=None, description="Comma separated element ids"),
    parent: Optional[str] = Query(default=None),
    type: Optional[str] = Query(default=None),
    name: Optional[str] = Query(default=None),
    source: Optional[str] = Query(default=None),
    target: Optional[str] = Query(default=None),
    created_by: Optional[str] = Query(default=None),
    options: FindOptions = Depends(get_find_options),
    fmt: str = Query(default="jmi1", alias="format", pattern=FORMAT_PATTERN),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    branch = get_branch_or_404(
        db, org_id, project_id, branch_id, current_user,
        allow_archived=options.include_archived or bool(options.archived),
    )
    wanted = split_ids(ids)
    elements = element_repo.list_elements(
        db,
        branch_id=branch.id,
        element_ids=[create_id(branch.id, e) for e in wanted] if wanted is not None else None,
        parent_id=create_id(branch.id, parent) if parent else None,
        element_type=type,
        name=name,
        source_id=create_id(branch.id, source) if source else None,
        target_id=create_id(branch.id, target) if target else None,
        created_by=created_by,
        options=options,
    )
    return convert(_public(db, elements), fmt)


@router.get("/search")
def search_elements(
    org_id: str,
    project_id: str,
    branch_id: str,
    q: str = Query(..., min_length=1),
    options: FindOptions = Depends(get_find_options),
    fmt: str = Query(default="jmi1", alias="format", pattern=FORMAT_PATTERN),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    branch = get_branch_or_404(
        db, org_id, project_id, branch_id, current_user,
        allow_archived=options.include_archived or bool(options.archived),
    )
    return convert(_public(db, element_repo.search_elements(db, branch_id=branch.id, text=q, options=options)), fmt)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_elements(
    org_id: str,
    project_id: str,
    branch_id: str,
    payload: Union[List[schemas.ElementCreate], schemas.ElementCreate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    branch = _writable_branch(db, org_id, project_id, branch_id, current_user)
    items = as_list(payload)
    ensure_unique([i.id for i in items], "element")
    for item in items:
        if not is_valid_element_id(item.id):
            raise HTTPException(status_code=400, detail=f"Invalid element id [{item.id}]")
        if item.parent == item.id:
            raise HTTPException(status_code=400, detail=f"Element [{item.id}] cannot be its own parent")

    pending = {create_id(branch.id, i.id) for i in items}
    taken = element_repo.existing_ids(db, pending)
    if taken:
        raise HTTPException(
            status_code=409,
            detail=f"Elements with the following ids already exist: {sorted(last_segment(t) for t in taken)}",
        )

    plans = []
    refs: Set[str] = set()
    for item in items:
        element_type = _resolve_type(item)
        resolved = {
            field: create_id(branch.id, getattr(item, field))
            for field in REFERENCE_FIELDS
            if getattr(item, field) is not None
        }
        resolved.setdefault("parent", create_id(branch.id, ROOT_ELEMENT))
        refs.update(resolved.values())
        plans.append((item, element_type, resolved))
    _check_references(db, refs, pending)

    created = [
        element_repo.create_element(
            db,
            branch=branch,
            element_id=item.id,
            element_type=element_type,
            name=item.name,
            documentation=item.documentation,
            parent_id=resolved["parent"],
            source_id=resolved.get("source"),
            target_id=resolved.get("target"),
            custom=item.custom,
            created_by=user.username,
        )
        for item, element_type, resolved in plans
    ]
    _fail_on_cycle(db, [e.id for e in created])
    db.commit()

    project = project_repo.get_project(db, branch.project_id)
    log(db, action=AuditAction.ELEMENT_CREATE, status=AuditStatus.SUCCESS, target_type="branch",
        target_id=branch.id, actor_user_id=user.username, organization_id=project.organization_id,
        metadata={"count": len(created), "ids": [last_segment(e.id) for e in created][:100]})
    result = _public(db, created)
    _emit(db, "created", result, user.username, branch)
    return result


def _update_elements(db: Session, user, current_user, org_id: str, project_id: str, branch_id: str,
                     items: List[schemas.ElementUpdate]) -> List[dict]:
    ids = [i.id for i in items]
    if any(not i for i in ids):
        raise HTTPException(status_code=400, detail="Each update must include an element id")
    ensure_unique(ids, "element")
    branch = _writable_branch(db, org_id, project_id, branch_id, current_user)

    pairs = []
    refs: Set[str] = set()
    moved: List[str] = []
    for item in items:
        element = element_repo.get_element(db, create_id(branch.id, item.id))
        if element is None:
            raise HTTPException(status_code=404, detail=f"Element [{item.id}] not found")
        changes: Dict = item.model_dump(exclude_unset=True)
        changes.pop("id", None)
        ensure_modifiable(element, changes, "element", item.id)
        for field in REFERENCE_FIELDS:
            if field in changes and changes[field] is None:
                raise HTTPException(status_code=400, detail=f"Element [{item.id}] field [{field}] cannot be null")
        if "parent" in changes:
            if item.id in ROOT_ELEMENTS:
                raise HTTPException(status_code=403, detail=f"The root element [{item.id}] cannot be moved")
            if changes["parent"] == item.id:
                raise HTTPException(status_code=400, detail=f"Element [{item.id}] cannot be its own parent")
            changes["parent_id"] = create_id(branch.id, changes.pop("parent"))
            refs.add(changes["parent_id"])
            moved.append(element.id)
        for field in ("source", "target"):
            if field in changes:
                if element.element_type != "Relationship":
                    raise HTTPException(
                        status_code=400,
                        detail=f"Element [{item.id}] of type {element.element_type} cannot have a {field}",
                    )
                changes[f"{field}_id"] = create_id(branch.id, changes.pop(field))
                refs.add(changes[f"{field}_id"])
        pairs.append((element, changes))
    _check_references(db, refs, set())

    for element, changes in pairs:
        element_repo.update_element(db, element, changes, actor=user.username)
    _fail_on_cycle(db, moved)
    db.commit()

    project = project_repo.get_project(db, branch.project_id)
    log(db, action=AuditAction.ELEMENT_UPDATE, status=AuditStatus.SUCCESS, target_type="branch",
        target_id=branch.id, actor_user_id=user.username, organization_id=project.organization_id,
        metadata={"count": len(pairs), "ids": [last_segment(e.id) for e, _c in pairs][:100]})
    result = _public(db, [e for e, _c in pairs])
    _emit(db, "updated", result, user.username, branch)
    return result


@router.patch("")
def update_elements(
    org_id: str,
    project_id: str,
    branch_id: str,
    payload: Union[List[schemas.ElementUpdate], schemas.ElementUpdate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _update_elements(db, user, current_user, org_id, project_id, branch_id, as_list(payload))


def _delete_elements(db: Session, user, current_user, org_id: str, project_id: str, branch_id: str,
                     element_ids: List[str]) -> List[str]:
    ensure_unique(element_ids, "element")
    branch = _writable_branch(db, org_id, project_id, branch_id, current_user)
    for element_id in element_ids:
        if element_id in ROOT_ELEMENTS:
            raise HTTPException(status_code=403, detail=f"The root element [{element_id}] cannot be deleted")
    namespaced = [create_id(branch.id, e) for e in element_ids]
    found = element_repo.existing_ids(db, namespaced)
    for element_id, full_id in zip(element_ids, namespaced):
        if full_id not in found:
            raise HTTPException(status_code=404, detail=f"Element [{element_id}] not found")
    protected = {create_id(branch.id, r) for r in ROOT_ELEMENTS}
    reached = protected.intersection(element_repo.subtree_ids(db, branch.id, namespaced))
    if reached:
        raise HTTPException(
            status_code=403,
            detail=f"Deleting would remove root elements: {sorted(last_segment(r) for r in reached)}",
        )

    removed = element_repo.delete_elements(db, branch, namespaced, actor=user.username)
    db.commit()

    project = project_repo.get_project(db, branch.project_id)
    removed_ids = [last_segment(r) for r in removed]
    log(db, action=AuditAction.ELEMENT_DELETE, status=AuditStatus.SUCCESS, target_type="branch",
        target_id=branch.id, actor_user_id=user.username, organization_id=project.organization_id,
        metadata={"count": len(removed_ids), "ids": removed_ids[:100]})
    _emit(db, "deleted", removed_ids, user.username, branch)
    return removed_ids


@router.delete("")
def delete_elements(
    org_id: str,
    project_id: str,
    branch_id: str,
    ids: str = Query(..., description="Comma separated element ids"),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _delete_elements(db, user, current_user, org_id, project_id, branch_id, split_ids(ids))


@router.get("/{element_id}")
def get_element(
    org_id: str,
    project_id: str,
    branch_id: str,
    element_id: str,
    subtree: bool = Query(default=False),
    include_archived: bool = Query(default=False),
    fmt: str = Query(default="jmi1", alias="format", pattern=FORMAT_PATTERN),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    """Return one element, or with ``subtree=true`` the element and all its descendants shaped by ``format``."""
    _user, current_user = user_context
    branch = get_branch_or_404(db, org_id, project_id, branch_id, current_user, allow_archived=include_archived)
    element = element_repo.get_element(db, create_id(branch.id, element_id))
    if element is None or (element.archived and not include_archived):
        raise HTTPException(status_code=404, detail=f"Element [{element_id}] not found")
    if not subtree:
        return _public(db, [element])[0]
    members = element_repo.get_elements(db, element_repo.subtree_ids(db, branch.id, [element.id]))
    if not include_archived:
        members = [m for m in members if not m.archived]
    return convert(_public(db, sorted(members, key=lambda m: m.id)), fmt)


@router.post("/{element_id}", status_code=status.HTTP_201_CREATED)
def create_element(
    org_id: str,
    project_id: str,
    branch_id: str,
    element_id: str,
    payload: schemas.ElementCreate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    if payload.id != element_id:
        raise HTTPException(status_code=400, detail="Element id in body does not match id in URL")
    return create_elements(
        org_id=org_id, project_id=project_id, branch_id=branch_id,
        payload=payload, db=db, user_context=user_context,
    )[0]


@router.patch("/{element_id}")
def update_element(
    org_id: str,
    project_id: str,
    branch_id: str,
    element_id: str,
    payload: schemas.ElementUpdate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    if payload.id not in (None, element_id):
        raise HTTPException(status_code=400, detail="Element id in body does not match id in URL")
    item = payload.model_copy(update={"id": element_id})
    return _update_elements(db, user, current_user, org_id, project_id, branch_id, [item])[0]


@router.delete("/{element_id}")
def delete_element(
    org_id: str,
    project_id: str,
    branch_id: str,
    element_id: str,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    """Delete an element and its subtree; returns every removed id."""
    user, current_user = user_context
    return _delete_elements(db, user, current_user, org_id, project_id, branch_id, [element_id])
