"""
Shared SQLAlchemy base and helpers.
"""
from datetime import datetime, UTC

from sqlalchemy import Column, Boolean, DateTime, String, ForeignKey
from sqlalchemy.orm import declarative_base, declared_attr

# Import SQLite compilation shims for PostgreSQL-only types when running tests
# under SQLite.
from .. import sqlite_compiler_shims  # noqa: F401


def now_utc():
    """Return an aware UTC datetime for default/updated timestamps."""
    return datetime.now(UTC)


Base = declarative_base()


class ExtensionMixin:
    """Bookkeeping columns shared by every user-editable resource."""

    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)
    archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    @declared_attr
    def created_by(cls):
        return Column(String(36), ForeignKey('users.username', ondelete='SET NULL'), nullable=True)

    @declared_attr
    def last_modified_by(cls):
        return Column(String(36), ForeignKey('users.username', ondelete='SET NULL'), nullable=True)

    @declared_attr
    def archived_by(cls):
        return Column(String(36), ForeignKey('users.username', ondelete='SET NULL'), nullable=True)

    def mark_archived(self, archived: bool, username: str) -> None:
        """Flip the archived flag, keeping archived_at/archived_by in step."""
        if archived and not self.archived:
            self.archived = True
            self.archived_at = now_utc()
            self.archived_by = username
        elif not archived and self.archived:
            self.archived = False
            self.archived_at = None
            self.archived_by = None
