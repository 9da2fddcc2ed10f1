"""
Element repository functions.

Elements form a containment tree per branch through ``parent_id``;
relationships additionally point at a ``source`` and ``target`` on the same
branch. All ids passed in and out of this module are namespaced.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from mbee.db import models
from mbee.db.repositories.common import FindOptions, apply_find_options
from mbee.utils.ids import (
    HOLDING_BIN_ELEMENT,
    MBEE_ELEMENT,
    ROOT_ELEMENT,
    UNDEFINED_ELEMENT,
    create_id,
    last_segment,
)
from mbee.utils.merge import deep_merge

logger = logging.getLogger(__name__)


class CircularReferenceError(ValueError):
    """Raised when a move would place an element under its own subtree."""


# (id, name, type, parent)
_ROOT_LAYOUT = [
    (ROOT_ELEMENT, "Model", "Package", None),
    (MBEE_ELEMENT, "__mbee__", "Package", ROOT_ELEMENT),
    (HOLDING_BIN_ELEMENT, "holding bin", "Package", MBEE_ELEMENT),
    (UNDEFINED_ELEMENT, "undefined element", "Block", MBEE_ELEMENT),
]


def get_element(db: Session, element_id: str) -> Optional[models.Element]:
    return db.query(models.Element).filter(models.Element.id == element_id).first()


def get_elements(db: Session, element_ids: Iterable[str]) -> List[models.Element]:
    ids = list(element_ids)
    if not ids:
        return []
    return db.query(models.Element).filter(models.Element.id.in_(ids)).all()


def existing_ids(db: Session, element_ids: Iterable[str]) -> Set[str]:
    ids = list(element_ids)
    if not ids:
        return set()
    return {eid for (eid,) in db.query(models.Element.id).filter(models.Element.id.in_(ids)).all()}


def list_elements(
    db: Session,
    *,
    branch_id: str,
    element_ids: Optional[Iterable[str]] = None,
    parent_id: Optional[str] = None,
    element_type: Optional[str] = None,
    name: Optional[str] = None,
    source_id: Optional[str] = None,
    target_id: Optional[str] = None,
    created_by: Optional[str] = None,
    options: Optional[FindOptions] = None,
) -> List[models.Element]:
    query = db.query(models.Element).filter(models.Element.branch_id == branch_id)
    if element_ids is not None:
        query = query.filter(models.Element.id.in_(list(element_ids)))
    if parent_id is not None:
        query = query.filter(models.Element.parent_id == parent_id)
    if element_type is not None:
        query = query.filter(models.Element.element_type == element_type)
    if name is not None:
        query = query.filter(models.Element.name == name)
    if source_id is not None:
        query = query.filter(models.Element.source_id == source_id)
    if target_id is not None:
        query = query.filter(models.Element.target_id == target_id)
    if created_by is not None:
        query = query.filter(models.Element.created_by == created_by)
    query = query.order_by(models.Element.id)
    return apply_find_options(query, models.Element, options).all()


def search_elements(
    db: Session,
    *,
    branch_id: str,
    text: str,
    options: Optional[FindOptions] = None,
) -> List[models.Element]:
    """Case-insensitive substring match over name and documentation."""
    pattern = f"%{text.strip()}%"
    query = (
        db.query(models.Element)
        .filter(models.Element.branch_id == branch_id)
        .filter(or_(models.Element.name.ilike(pattern), models.Element.documentation.ilike(pattern)))
        .order_by(models.Element.id)
    )
    return apply_find_options(query, models.Element, options).all()


def contains_map(db: Session, parent_ids: Iterable[str]) -> Dict[str, List[str]]:
    """Map each parent id to the ids of its direct children."""
    ids = list(parent_ids)
    result: Dict[str, List[str]] = {i: [] for i in ids}
    if not ids:
        return result
    rows = (
        db.query(models.Element.id, models.Element.parent_id)
        .filter(models.Element.parent_id.in_(ids))
        .order_by(models.Element.id)
        .all()
    )
    for child_id, parent_id in rows:
        result.setdefault(parent_id, []).append(child_id)
    return result


def subtree_ids(db: Session, branch_id: str, root_ids: Iterable[str]) -> List[str]:
    """Return the given ids plus every descendant, breadth first."""
    found: List[str] = []
    seen: Set[str] = set()
    frontier = [i for i in root_ids if i not in seen]
    while frontier:
        batch = []
        for eid in frontier:
            if eid not in seen:
                seen.add(eid)
                found.append(eid)
                batch.append(eid)
        if not batch:
            break
        frontier = [
            cid
            for (cid,) in db.query(models.Element.id)
            .filter(models.Element.branch_id == branch_id, models.Element.parent_id.in_(batch))
            .all()
        ]
    return found


def check_no_cycle(db: Session, element_id: str) -> None:
    """Walk up from ``element_id`` and fail if the parent chain loops.

    Expects pending moves to be flushed already so the walk sees them.
    """
    visited: Set[str] = {element_id}
    current = db.query(models.Element.parent_id).filter(models.Element.id == element_id).scalar()
    while current is not None:
        if current in visited:
            raise CircularReferenceError(
                f"Element {last_segment(element_id)} would become its own ancestor."
            )
        visited.add(current)
        current = db.query(models.Element.parent_id).filter(models.Element.id == current).scalar()


def create_root_elements(db: Session, branch: models.Branch, *, created_by: Optional[str] = None) -> None:
    for elem_id, name, elem_type, parent in _ROOT_LAYOUT:
        cls = models.ELEMENT_TYPES[elem_type]
        db.add(cls(
            id=create_id(branch.id, elem_id),
            branch_id=branch.id,
            project_id=branch.project_id,
            name=name,
            parent_id=create_id(branch.id, parent) if parent else None,
            custom={},
            created_by=created_by,
            last_modified_by=created_by,
        ))
    db.flush()


def _rebase(ref: Optional[str], source_branch_id: str, target_branch_id: str) -> Optional[str]:
    prefix = source_branch_id + ":"
    if ref and ref.startswith(prefix):
        return target_branch_id + ":" + ref[len(prefix):]
    return ref


def copy_branch_elements(
    db: Session,
    source: models.Branch,
    target: models.Branch,
    *,
    created_by: Optional[str] = None,
) -> int:
    """Copy every element of ``source`` onto ``target``, rewriting in-branch references."""
    originals = db.query(models.Element).filter(models.Element.branch_id == source.id).all()
    for elem in originals:
        cls = models.ELEMENT_TYPES.get(elem.element_type, models.Block)
        db.add(cls(
            id=_rebase(elem.id, source.id, target.id),
            branch_id=target.id,
            project_id=target.project_id,
            name=elem.name,
            documentation=elem.documentation,
            parent_id=_rebase(elem.parent_id, source.id, target.id),
            source_id=_rebase(elem.source_id, source.id, target.id),
            target_id=_rebase(elem.target_id, source.id, target.id),
            custom=dict(elem.custom or {}),
            archived=elem.archived,
            archived_at=elem.archived_at,
            archived_by=elem.archived_by,
            created_by=created_by,
            last_modified_by=created_by,
        ))
    db.flush()
    return len(originals)


def create_element(
    db: Session,
    *,
    branch: models.Branch,
    element_id: str,
    element_type: str,
    name: Optional[str] = None,
    documentation: Optional[str] = None,
    parent_id: Optional[str] = None,
    source_id: Optional[str] = None,
    target_id: Optional[str] = None,
    custom: Optional[Dict[str, Any]] = None,
    created_by: Optional[str] = None,
) -> models.Element:
    cls = models.ELEMENT_TYPES[element_type]
    elem = cls(
        id=create_id(branch.id, element_id),
        branch_id=branch.id,
        project_id=branch.project_id,
        name=name,
        documentation=documentation,
        parent_id=parent_id,
        source_id=source_id,
        target_id=target_id,
        custom=custom or {},
        created_by=created_by,
        last_modified_by=created_by,
    )
    db.add(elem)
    return elem


def update_element(db: Session, elem: models.Element, changes: Dict[str, Any], *, actor: str) -> models.Element:
    """Apply already-validated changes; reference fields carry namespaced ids."""
    for field in ("name", "documentation"):
        if field in changes:
            setattr(elem, field, changes[field])
    for field in ("parent_id", "source_id", "target_id"):
        if changes.get(field) is not None:
            setattr(elem, field, changes[field])
    if changes.get("custom") is not None:
        elem.custom = deep_merge(elem.custom, changes["custom"])
    if changes.get("archived") is not None:
        elem.mark_archived(bool(changes["archived"]), actor)
    elem.last_modified_by = actor
    return elem


def delete_elements(db: Session, branch: models.Branch, element_ids: Iterable[str], *, actor: Optional[str] = None) -> List[str]:
    """Delete elements with their subtrees and repair dangling relationships.

    Relationships left on the branch that pointed at a deleted element are
    re-pointed at the branch's ``undefined`` element and the breakage is
    appended to ``custom.mbee.broken_relationships``. Returns the deleted ids.
    """
    removed = subtree_ids(db, branch.id, element_ids)
    if not removed:
        return []
    removed_set = set(removed)
    undefined_id = create_id(branch.id, UNDEFINED_ELEMENT)

    dangling = (
        db.query(models.Element)
        .filter(
            models.Element.branch_id == branch.id,
            ~models.Element.id.in_(removed),
            or_(models.Element.source_id.in_(removed), models.Element.target_id.in_(removed)),
        )
        .all()
    )
    stamp = models.now_utc().isoformat()
    for rel in dangling:
        broken = []
        for field, kind in (("source_id", "source"), ("target_id", "target")):
            ref = getattr(rel, field)
            if ref in removed_set:
                broken.append({"date": stamp, "type": kind, "element": last_segment(ref), "reason": "Element deleted"})
                setattr(rel, field, undefined_id)
        history = list(((rel.custom or {}).get("mbee") or {}).get("broken_relationships") or [])
        rel.custom = deep_merge(rel.custom, {"mbee": {"broken_relationships": history + broken}})
        if actor:
            rel.last_modified_by = actor

    db.query(models.Element).filter(models.Element.id.in_(removed)).delete(synchronize_session=False)
    db.flush()
    logger.info("elements_deleted: branch=%s count=%d relinked=%d", branch.id, len(removed), len(dangling))
    return removed
