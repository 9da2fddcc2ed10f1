"""
Domain-split Pydantic schemas re-exported from one import point.
"""

from .users import UserBase, UserCreate, UserUpdate, PasswordUpdate, LoginResponse
from .organizations import OrganizationBase, OrganizationCreate, OrganizationUpdate, MemberRoleUpdate
from .projects import ProjectBase, ProjectCreate, ProjectUpdate
from .branches import BranchCreate, BranchUpdate
from .elements import ElementBase, ElementCreate, ElementUpdate
from .webhooks import WebhookAuth, WebhookResponseTarget, WebhookBase, WebhookCreate, WebhookUpdate
from .artifacts import ArtifactUpdate
from .audits import AuditLogBase, AuditLogCreate, AuditLog

__all__ = [
    "UserBase",
    "UserCreate",
    "UserUpdate",
    "PasswordUpdate",
    "LoginResponse",
    "OrganizationBase",
    "OrganizationCreate",
    "OrganizationUpdate",
    "MemberRoleUpdate",
    "ProjectBase",
    "ProjectCreate",
    "ProjectUpdate",
    "BranchCreate",
    "BranchUpdate",
    "ElementBase",
    "ElementCreate",
    "ElementUpdate",
    "WebhookAuth",
    "WebhookResponseTarget",
    "WebhookBase",
    "WebhookCreate",
    "WebhookUpdate",
    "ArtifactUpdate",
    "AuditLogBase",
    "AuditLogCreate",
    "AuditLog",
]
