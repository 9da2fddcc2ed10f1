from sqlalchemy import Column, String, Boolean, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB
from .base import Base, ExtensionMixin


class Branch(ExtensionMixin, Base):
    __tablename__ = 'branches'
    # Namespaced as "<org>:<project>:<branch>"
    id = Column(String(110), primary_key=True)
    project_id = Column(String(73), ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    name = Column(String, nullable=True)
    source_id = Column(String(110), ForeignKey('branches.id', ondelete='SET NULL'), nullable=True)
    tag = Column(Boolean, nullable=False, default=False)
    custom = Column(JSONB, nullable=False, default=dict)

    __table_args__ = (
        Index('idx_branches_project_id', 'project_id'),
    )
