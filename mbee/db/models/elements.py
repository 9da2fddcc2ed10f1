from sqlalchemy import Column, String, Text, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB
from .base import Base, ExtensionMixin


class Element(ExtensionMixin, Base):
    """A node of a branch's model tree.

    Single-table inheritance on ``element_type``; ``parent_id`` builds the
    containment tree and ``source_id``/``target_id`` are only populated for
    relationships. All references stay within one branch.
    """
    __tablename__ = 'elements'
    # Namespaced as "<org>:<project>:<branch>:<element>"
    id = Column(String(180), primary_key=True)
    branch_id = Column(String(110), ForeignKey('branches.id', ondelete='CASCADE'), nullable=False)
    project_id = Column(String(73), ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    element_type = Column(String(32), nullable=False)
    name = Column(String, nullable=True)
    documentation = Column(Text, nullable=True)
    parent_id = Column(String(180), nullable=True)
    source_id = Column(String(180), nullable=True)
    target_id = Column(String(180), nullable=True)
    custom = Column(JSONB, nullable=False, default=dict)

    __mapper_args__ = {
        "polymorphic_on": element_type,
        "polymorphic_identity": "Element",
    }

    __table_args__ = (
        Index('idx_elements_branch_id', 'branch_id'),
        Index('idx_elements_parent_id', 'parent_id'),
        Index('idx_elements_source_id', 'source_id'),
        Index('idx_elements_target_id', 'target_id'),
    )


class Block(Element):
    __mapper_args__ = {"polymorphic_identity": "Block"}


class Relationship(Element):
    __mapper_args__ = {"polymorphic_identity": "Relationship"}


class Package(Element):
    __mapper_args__ = {"polymorphic_identity": "Package"}


ELEMENT_TYPES = {
    "Block": Block,
    "Relationship": Relationship,
    "Package": Package,
}
