import uuid
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, LargeBinary, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from .base import Base, ExtensionMixin, now_utc


class Artifact(ExtensionMixin, Base):
    __tablename__ = 'artifacts'
    # Namespaced as "<org>:<project>:<artifact>"
    id = Column(String(140), primary_key=True)
    project_id = Column(String(73), ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    filename = Column(String, nullable=False)
    content_type = Column(String, nullable=False)
    description = Column(String, nullable=True)
    custom = Column(JSONB, nullable=False, default=dict)

    __table_args__ = (
        Index('idx_artifacts_project_id', 'project_id'),
    )


class ArtifactVersion(Base):
    """One uploaded revision of an artifact; the newest row is the current content."""
    __tablename__ = 'artifact_versions'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    artifact_id = Column(String(140), ForeignKey('artifacts.id', ondelete='CASCADE'), nullable=False)
    number = Column(Integer, nullable=False)
    hash = Column(String(64), ForeignKey('artifact_blobs.hash'), nullable=False)
    size = Column(Integer, nullable=False)
    created_by = Column(String(36), ForeignKey('users.username', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    __table_args__ = (
        UniqueConstraint('artifact_id', 'number', name='uq_artifact_versions_number'),
        Index('idx_artifact_versions_hash', 'hash'),
    )


class ArtifactBlob(Base):
    """Content-addressed storage; identical uploads share one row."""
    __tablename__ = 'artifact_blobs'
    hash = Column(String(64), primary_key=True)  # sha256 hex
    data = Column(LargeBinary, nullable=False)
    size = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
