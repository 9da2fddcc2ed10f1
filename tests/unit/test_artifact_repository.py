import hashlib

import pytest

from mbee.db import models
from mbee.db.repositories import artifacts as artifact_repo
from mbee.db.repositories import organizations as org_repo
from mbee.db.repositories import projects as project_repo


@pytest.fixture
def project(db):
    org_repo.create_organization(db, org_id="acme", name="Acme")
    project = project_repo.create_project(db, org_id="acme", project_id="rocket", name="Rocket")
    db.commit()
    return project


def _create(db, project, aid, content=b"data"):
    return artifact_repo.create_artifact(
        db, project=project, artifact_id=f"{project.id}:{aid}", filename=f"{aid}.bin",
        content_type="application/octet-stream", content=content,
    )


def test_versions_are_numbered_and_deduplicated(db, project):
    artifact = _create(db, project, "notes", b"v1")
    assert artifact_repo.add_version(db, artifact, b"v1", actor=None) is None
    second = artifact_repo.add_version(db, artifact, b"v2", actor=None)
    assert second.number == 2
    db.commit()

    history = artifact_repo.list_versions(db, [artifact.id])[artifact.id]
    assert [(v.number, v.size) for v in history] == [(1, 2), (2, 2)]
    assert artifact_repo.latest_version(db, artifact.id).hash == hashlib.sha256(b"v2").hexdigest()


def test_identical_content_shares_one_blob(db, project):
    _create(db, project, "one", b"same")
    _create(db, project, "two", b"same")
    db.commit()
    assert db.query(models.ArtifactBlob).count() == 1

    artifact_repo.delete_artifacts(db, ["acme:rocket:one"])
    db.commit()
    assert db.query(models.ArtifactBlob).count() == 1

    artifact_repo.delete_artifacts(db, ["acme:rocket:two"])
    db.commit()
    assert db.query(models.ArtifactBlob).count() == 0
    assert db.query(models.ArtifactVersion).count() == 0


def test_update_merges_custom_data(db, project):
    artifact = _create(db, project, "notes")
    artifact.custom = {"a": {"x": 1}}
    db.flush()
    artifact_repo.update_artifact(db, artifact, {"custom": {"a": {"y": 2}}, "description": "d"}, actor="root")
    assert artifact.custom == {"a": {"x": 1, "y": 2}}
    assert artifact.description == "d"
    assert artifact.last_modified_by == "root"


def test_list_filters_by_filename(db, project):
    _create(db, project, "one")
    _create(db, project, "two")
    db.commit()
    found = artifact_repo.list_artifacts(db, project_id=project.id, filename="two.bin")
    assert [a.id for a in found] == ["acme:rocket:two"]
    assert len(artifact_repo.list_artifacts(db, project_id=project.id)) == 2
