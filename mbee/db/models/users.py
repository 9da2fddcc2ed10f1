from sqlalchemy import Column, String, Boolean, Text
from sqlalchemy.dialects.postgresql import JSONB
from .base import Base, ExtensionMixin


class User(ExtensionMixin, Base):
    __tablename__ = 'users'
    username = Column(String(36), primary_key=True)
    email = Column(String, nullable=True, index=True)
    fname = Column(String, nullable=True)
    lname = Column(String, nullable=True)
    preferred_name = Column(String, nullable=True)
    # Never serialized; local users only
    password_hash = Column(Text, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    provider = Column(String(20), nullable=False, default='local')  # 'local'|'proxy'
    custom = Column(JSONB, nullable=False, default=dict)
