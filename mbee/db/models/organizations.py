from sqlalchemy import Column, String, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import JSONB
from .base import Base, ExtensionMixin, now_utc


class Organization(ExtensionMixin, Base):
    __tablename__ = 'organizations'
    id = Column(String(36), primary_key=True)
    name = Column(String, nullable=False)
    custom = Column(JSONB, nullable=False, default=dict)


class OrganizationMembership(Base):
    __tablename__ = 'organization_memberships'
    organization_id = Column(String(36), ForeignKey('organizations.id', ondelete='CASCADE'), primary_key=True)
    user_id = Column(String(36), ForeignKey('users.username', ondelete='CASCADE'), primary_key=True)
    role = Column(String, nullable=False)  # 'read'|'write'|'admin'
    created_at = Column(DateTime(timezone=True), default=now_utc)

    __table_args__ = (
        Index('idx_org_memberships_user_id', 'user_id'),
        CheckConstraint("role in ('read','write','admin')", name='ck_org_memberships_role'),
    )
