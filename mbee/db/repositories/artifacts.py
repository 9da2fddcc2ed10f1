"""
Artifact repository functions.

Artifacts are files attached to a project. Content is stored once per sha256
hash; every upload adds a version row pointing at its blob, and a blob is
dropped when no version references it any more.
"""
from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from mbee.db import models
from mbee.db.repositories.common import FindOptions, apply_find_options
from mbee.utils.merge import deep_merge

logger = logging.getLogger(__name__)


def get_artifact(db: Session, artifact_id: str) -> Optional[models.Artifact]:
    return db.query(models.Artifact).filter(models.Artifact.id == artifact_id).first()


def list_artifacts(
    db: Session,
    *,
    project_id: str,
    artifact_ids: Optional[Iterable[str]] = None,
    filename: Optional[str] = None,
    options: Optional[FindOptions] = None,
) -> List[models.Artifact]:
    query = db.query(models.Artifact).filter(models.Artifact.project_id == project_id)
    if artifact_ids is not None:
        query = query.filter(models.Artifact.id.in_(list(artifact_ids)))
    if filename is not None:
        query = query.filter(models.Artifact.filename == filename)
    query = query.order_by(models.Artifact.id)
    return apply_find_options(query, models.Artifact, options).all()


def list_versions(db: Session, artifact_ids: Iterable[str]) -> Dict[str, List[models.ArtifactVersion]]:
    """Versions per artifact, oldest first."""
    ids = list(artifact_ids)
    result: Dict[str, List[models.ArtifactVersion]] = {i: [] for i in ids}
    if not ids:
        return result
    rows = (
        db.query(models.ArtifactVersion)
        .filter(models.ArtifactVersion.artifact_id.in_(ids))
        .order_by(models.ArtifactVersion.number)
        .all()
    )
    for row in rows:
        result[row.artifact_id].append(row)
    return result


def latest_version(db: Session, artifact_id: str) -> Optional[models.ArtifactVersion]:
    versions = list_versions(db, [artifact_id])[artifact_id]
    return versions[-1] if versions else None


def get_blob(db: Session, blob_hash: str) -> Optional[models.ArtifactBlob]:
    return db.query(models.ArtifactBlob).filter(models.ArtifactBlob.hash == blob_hash).first()


def _store_blob(db: Session, content: bytes) -> models.ArtifactBlob:
    digest = hashlib.sha256(content).hexdigest()
    blob = get_blob(db, digest)
    if blob is None:
        blob = models.ArtifactBlob(hash=digest, data=content, size=len(content))
        db.add(blob)
        db.flush()
    return blob


def add_version(db: Session, artifact: models.Artifact, content: bytes, *, actor: Optional[str]) -> Optional[models.ArtifactVersion]:
    """Record ``content`` as the artifact's newest version.

    Returns None when it matches the current content, so re-uploading the
    same file does not grow the history.
    """
    blob = _store_blob(db, content)
    current = latest_version(db, artifact.id)
    if current is not None and current.hash == blob.hash:
        return None
    version = models.ArtifactVersion(
        artifact_id=artifact.id,
        number=current.number + 1 if current else 1,
        hash=blob.hash,
        size=blob.size,
        created_by=actor,
    )
    db.add(version)
    db.flush()
    return version


def create_artifact(
    db: Session,
    *,
    project: models.Project,
    artifact_id: str,
    filename: str,
    content_type: str,
    content: bytes,
    description: Optional[str] = None,
    custom: Optional[Dict[str, Any]] = None,
    created_by: Optional[str] = None,
) -> models.Artifact:
    artifact = models.Artifact(
        id=artifact_id,
        project_id=project.id,
        filename=filename,
        content_type=content_type,
        description=description,
        custom=custom or {},
        created_by=created_by,
        last_modified_by=created_by,
    )
    db.add(artifact)
    db.flush()
    add_version(db, artifact, content, actor=created_by)
    logger.info("artifact_created: id=%s size=%d", artifact.id, len(content))
    return artifact


def update_artifact(db: Session, artifact: models.Artifact, changes: Dict[str, Any], *, actor: str) -> models.Artifact:
    for field in ("filename", "content_type", "description"):
        if changes.get(field) is not None:
            setattr(artifact, field, changes[field])
    if changes.get("custom") is not None:
        artifact.custom = deep_merge(artifact.custom, changes["custom"])
    if changes.get("archived") is not None:
        artifact.mark_archived(bool(changes["archived"]), actor)
    artifact.last_modified_by = actor
    db.flush()
    return artifact


def _prune_blobs(db: Session, hashes: Iterable[str]) -> int:
    candidates = set(hashes)
    if not candidates:
        return 0
    still_used = {
        h for (h,) in db.query(models.ArtifactVersion.hash)
        .filter(models.ArtifactVersion.hash.in_(candidates))
        .distinct()
        .all()
    }
    orphaned = candidates - still_used
    if orphaned:
        db.query(models.ArtifactBlob).filter(models.ArtifactBlob.hash.in_(orphaned)).delete(synchronize_session="fetch")
    return len(orphaned)


def delete_artifacts(db: Session, artifact_ids: Iterable[str]) -> None:
    """Delete artifacts with their versions and any blob left unreferenced."""
    ids = list(artifact_ids)
    if not ids:
        return
    hashes = [
        h for (h,) in db.query(models.ArtifactVersion.hash).filter(models.ArtifactVersion.artifact_id.in_(ids)).all()
    ]
    db.query(models.ArtifactVersion).filter(
        models.ArtifactVersion.artifact_id.in_(ids)
    ).delete(synchronize_session="fetch")
    db.query(models.Artifact).filter(models.Artifact.id.in_(ids)).delete(synchronize_session="fetch")
    db.flush()
    pruned = _prune_blobs(db, hashes)
    db.flush()
    logger.info("artifacts_deleted: count=%d blobs_pruned=%d", len(ids), pruned)


def delete_project_artifacts(db: Session, project_id: str) -> None:
    ids = [a for (a,) in db.query(models.Artifact.id).filter(models.Artifact.project_id == project_id).all()]
    delete_artifacts(db, ids)
