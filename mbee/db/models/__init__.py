"""
Domain-split SQLAlchemy models.

Exposes `Base`, `now_utc` and all ORM classes from one import point.
"""

from .base import Base, ExtensionMixin, now_utc  # re-export

from .users import User
from .organizations import Organization, OrganizationMembership
from .projects import Project, ProjectMembership
from .branches import Branch
from .artifacts import Artifact, ArtifactVersion, ArtifactBlob
from .elements import Element, Block, Relationship, Package, ELEMENT_TYPES
from .webhooks import Webhook, OutgoingWebhook, IncomingWebhook, WEBHOOK_TYPES
from .audit import AuditLog
from .tokens import ApiToken

__all__ = [
    # base
    "Base",
    "ExtensionMixin",
    "now_utc",
    # users/orgs/projects
    "User",
    "Organization",
    "OrganizationMembership",
    "Project",
    "ProjectMembership",
    # model data
    "Branch",
    "Artifact",
    "ArtifactVersion",
    "ArtifactBlob",
    "Element",
    "Block",
    "Relationship",
    "Package",
    "ELEMENT_TYPES",
    # webhooks
    "Webhook",
    "OutgoingWebhook",
    "IncomingWebhook",
    "WEBHOOK_TYPES",
    # audit/tokens
    "AuditLog",
    "ApiToken",
]
