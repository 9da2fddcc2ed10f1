from sqlalchemy import Column, String, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import JSONB
from .base import Base, ExtensionMixin, now_utc


class Project(ExtensionMixin, Base):
    __tablename__ = 'projects'
    # Namespaced as "<org>:<project>"
    id = Column(String(73), primary_key=True)
    organization_id = Column(String(36), ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    name = Column(String, nullable=False)
    visibility = Column(String(16), nullable=False, default='private')  # 'internal'|'private'
    custom = Column(JSONB, nullable=False, default=dict)

    __table_args__ = (
        Index('idx_projects_organization_id', 'organization_id'),
        CheckConstraint("visibility in ('internal','private')", name='ck_projects_visibility'),
    )


class ProjectMembership(Base):
    __tablename__ = 'project_memberships'
    project_id = Column(String(73), ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True)
    user_id = Column(String(36), ForeignKey('users.username', ondelete='CASCADE'), primary_key=True)
    role = Column(String, nullable=False)  # 'read'|'write'|'admin'
    created_at = Column(DateTime(timezone=True), default=now_utc)

    __table_args__ = (
        Index('idx_project_memberships_user_id', 'user_id'),
        CheckConstraint("role in ('read','write','admin')", name='ck_project_memberships_role'),
    )
