import uuid
from sqlalchemy import Column, String, Text, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from .base import Base, ExtensionMixin


class Webhook(ExtensionMixin, Base):
    """Webhook configuration attached to the server, an org, a project or a branch.

    Exactly the ids of the enclosing level and its ancestors are set; all
    three left empty means a server-level webhook.
    """
    __tablename__ = 'webhooks'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    webhook_type = Column(String(16), nullable=False)
    name = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    triggers = Column(JSONB, nullable=False, default=list)
    organization_id = Column(String(36), ForeignKey('organizations.id', ondelete='CASCADE'), nullable=True)
    project_id = Column(String(73), ForeignKey('projects.id', ondelete='CASCADE'), nullable=True)
    branch_id = Column(String(110), ForeignKey('branches.id', ondelete='CASCADE'), nullable=True)
    # Outgoing only
    responses = Column(JSONB, nullable=True)
    # Incoming only; the token itself is stored hashed
    token_hash = Column(Text, nullable=True)
    token_location = Column(String, nullable=True)
    custom = Column(JSONB, nullable=False, default=dict)

    __mapper_args__ = {
        "polymorphic_on": webhook_type,
        "polymorphic_identity": "Webhook",
    }

    __table_args__ = (
        Index('idx_webhooks_scope', 'organization_id', 'project_id', 'branch_id'),
    )

    @property
    def level(self) -> str:
        if self.branch_id:
            return "branch"
        if self.project_id:
            return "project"
        if self.organization_id:
            return "org"
        return "server"


class OutgoingWebhook(Webhook):
    __mapper_args__ = {"polymorphic_identity": "Outgoing"}


class IncomingWebhook(Webhook):
    __mapper_args__ = {"polymorphic_identity": "Incoming"}


WEBHOOK_TYPES = {
    "Outgoing": OutgoingWebhook,
    "Incoming": IncomingWebhook,
}
