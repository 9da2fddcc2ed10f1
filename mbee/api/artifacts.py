"""
Artifacts API endpoints.

Artifacts are files kept alongside a project's model: reading them needs
project read, uploading a new one project write, and changing or deleting
one project admin. Content is uploaded as multipart form data; metadata
changes are plain JSON.
"""
import mimetypes
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from mbee import events
from mbee.api.deps import ensure_unique, get_current_user_context, get_find_options, split_ids
from mbee.api.lookups import ensure_modifiable, get_project_or_404
from mbee.api.permissions import can_manage_project, can_write_project
from mbee.api.public_data import artifact_public
from mbee.audit import AuditAction, AuditStatus, log
from mbee.db import models, schemas
from mbee.db.database import get_db
from mbee.db.repositories import artifacts as artifact_repo
from mbee.db.repositories.common import FindOptions
from mbee.utils.ids import create_id, is_valid_artifact_id

router = APIRouter(prefix="/orgs/{org_id}/projects/{project_id}/artifacts", tags=["artifacts"])

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _emit(db: Session, action: str, payload, actor: str, project: models.Project) -> None:
    events.emit(
        events.event_name("artifacts", action),
        payload,
        events.EventContext(db=db, organization_id=project.organization_id, project_id=project.id, actor=actor),
    )


def _public(db: Session, artifacts: List[models.Artifact]) -> List[dict]:
    versions = artifact_repo.list_versions(db, [a.id for a in artifacts])
    return [artifact_public(a, versions[a.id]) for a in artifacts]


def _audit(db: Session, action: AuditAction, artifact_id: str, actor: str, project: models.Project, metadata=None) -> None:
    log(db, action=action, status=AuditStatus.SUCCESS, target_type="artifact", target_id=artifact_id,
        actor_user_id=actor, organization_id=project.organization_id,
        metadata={"project": project.id, **(metadata or {})})


def _artifact_or_404(db: Session, project: models.Project, artifact_id: str) -> models.Artifact:
    artifact = artifact_repo.get_artifact(db, create_id(project.id, artifact_id))
    if artifact is None:
        raise HTTPException(status_code=404, detail=f"Artifact [{artifact_id}] not found")
    return artifact


def _content_type(upload: UploadFile, filename: str) -> str:
    if upload.content_type and upload.content_type != DEFAULT_CONTENT_TYPE:
        return upload.content_type
    return mimetypes.guess_type(filename)[0] or DEFAULT_CONTENT_TYPE


@router.get("")
def list_artifacts(
    org_id: str,
    project_id: str,
    ids: Optional[str] = Query(default=None, description="Comma separated artifact ids"),
    filename: Optional[str] = Query(default=None),
    options: FindOptions = Depends(get_find_options),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    project = get_project_or_404(db, org_id, project_id, current_user,
                                 allow_archived=options.include_archived or bool(options.archived))
    wanted = split_ids(ids)
    artifact_ids = [create_id(project.id, a) for a in wanted] if wanted is not None else None
    artifacts = artifact_repo.list_artifacts(
        db, project_id=project.id, artifact_ids=artifact_ids, filename=filename, options=options
    )
    return _public(db, artifacts)


@router.get("/{artifact_id}")
def get_artifact(
    org_id: str,
    project_id: str,
    artifact_id: str,
    include_archived: bool = Query(default=False),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    project = get_project_or_404(db, org_id, project_id, current_user, allow_archived=include_archived)
    artifact = _artifact_or_404(db, project, artifact_id)
    if artifact.archived and not include_archived:
        raise HTTPException(status_code=404, detail=f"Artifact [{artifact_id}] not found")
    return _public(db, [artifact])[0]


@router.get("/{artifact_id}/blob")
def get_artifact_blob(
    org_id: str,
    project_id: str,
    artifact_id: str,
    version: Optional[int] = Query(default=None, ge=1, description="History entry to download; latest by default"),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    project = get_project_or_404(db, org_id, project_id, current_user, allow_archived=True)
    artifact = _artifact_or_404(db, project, artifact_id)
    history = artifact_repo.list_versions(db, [artifact.id])[artifact.id]
    if version is not None:
        history = [v for v in history if v.number == version]
    if not history:
        raise HTTPException(status_code=404, detail=f"Artifact [{artifact_id}] has no version [{version}]")
    blob = artifact_repo.get_blob(db, history[-1].hash)
    return Response(
        content=blob.data,
        media_type=artifact.content_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@router.post("/{artifact_id}", status_code=status.HTTP_201_CREATED)
def create_artifact(
    org_id: str,
    project_id: str,
    artifact_id: str,
    file: UploadFile = File(...),
    filename: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    project = get_project_or_404(db, org_id, project_id, current_user)
    if not can_write_project(project, current_user):
        raise HTTPException(status_code=403, detail=f"Insufficient permissions to create artifacts in [{project_id}]")
    if not is_valid_artifact_id(artifact_id):
        raise HTTPException(status_code=400, detail=f"Invalid artifact id [{artifact_id}]")
    if artifact_repo.get_artifact(db, create_id(project.id, artifact_id)) is not None:
        raise HTTPException(status_code=409, detail=f"Artifact [{artifact_id}] already exists")
    name = (filename or file.filename or artifact_id).strip()
    content = file.file.read()
    artifact = artifact_repo.create_artifact(
        db,
        project=project,
        artifact_id=create_id(project.id, artifact_id),
        filename=name,
        content_type=_content_type(file, name),
        content=content,
        description=description,
        created_by=user.username,
    )
    db.commit()
    _audit(db, AuditAction.ARTIFACT_CREATE, artifact.id, user.username, project, {"size": len(content)})
    data = _public(db, [artifact])[0]
    _emit(db, "created", data, user.username, project)
    return data


def _manageable_artifact(db: Session, current_user, org_id: str, project_id: str, artifact_id: str):
    project = get_project_or_404(db, org_id, project_id, current_user)
    if not can_manage_project(project, current_user):
        raise HTTPException(status_code=403, detail=f"Insufficient permissions to change artifacts in [{project_id}]")
    return project, _artifact_or_404(db, project, artifact_id)


@router.patch("/{artifact_id}")
def update_artifact(
    org_id: str,
    project_id: str,
    artifact_id: str,
    payload: schemas.ArtifactUpdate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    project, artifact = _manageable_artifact(db, current_user, org_id, project_id, artifact_id)
    changes = payload.model_dump(exclude_unset=True)
    ensure_modifiable(artifact, changes, "artifact", artifact_id)
    if "filename" in changes and not (changes["filename"] or "").strip():
        raise HTTPException(status_code=400, detail="Artifact filename cannot be empty")
    artifact_repo.update_artifact(db, artifact, changes, actor=user.username)
    db.commit()
    _audit(db, AuditAction.ARTIFACT_UPDATE, artifact.id, user.username, project, {"fields": sorted(changes)})
    data = _public(db, [artifact])[0]
    _emit(db, "updated", data, user.username, project)
    return data


@router.put("/{artifact_id}/blob")
def upload_artifact_blob(
    org_id: str,
    project_id: str,
    artifact_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    """Upload new content; unchanged content leaves the history as it is."""
    user, current_user = user_context
    project, artifact = _manageable_artifact(db, current_user, org_id, project_id, artifact_id)
    ensure_modifiable(artifact, {}, "artifact", artifact_id)
    content = file.file.read()
    version = artifact_repo.add_version(db, artifact, content, actor=user.username)
    if version is not None:
        artifact.last_modified_by = user.username
    db.commit()
    if version is not None:
        _audit(db, AuditAction.ARTIFACT_UPDATE, artifact.id, user.username, project,
               {"version": version.number, "size": version.size})
    data = _public(db, [artifact])[0]
    if version is not None:
        _emit(db, "updated", data, user.username, project)
    return data


def _delete_artifacts(db: Session, user, current_user, org_id: str, project_id: str, artifact_ids: List[str]) -> List[str]:
    ensure_unique(artifact_ids, "artifact")
    project = get_project_or_404(db, org_id, project_id, current_user)
    if not can_manage_project(project, current_user):
        raise HTTPException(status_code=403, detail=f"Insufficient permissions to delete artifacts in [{project_id}]")
    artifacts = [_artifact_or_404(db, project, a) for a in artifact_ids]
    artifact_repo.delete_artifacts(db, [a.id for a in artifacts])
    db.commit()
    for artifact_id in artifact_ids:
        _audit(db, AuditAction.ARTIFACT_DELETE, create_id(project.id, artifact_id), user.username, project)
    _emit(db, "deleted", artifact_ids, user.username, project)
    return artifact_ids


@router.delete("")
def delete_artifacts(
    org_id: str,
    project_id: str,
    ids: str = Query(..., description="Comma separated artifact ids"),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _delete_artifacts(db, user, current_user, org_id, project_id, split_ids(ids))


@router.delete("/{artifact_id}")
def delete_artifact(
    org_id: str,
    project_id: str,
    artifact_id: str,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _delete_artifacts(db, user, current_user, org_id, project_id, [artifact_id])[0]
