"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-09-21 10:12:44.118230

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _user_fk():
    return sa.ForeignKey('users.username', ondelete='SET NULL')


def _extension_columns():
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('archived', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('archived_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(36), _user_fk(), nullable=True),
        sa.Column('last_modified_by', sa.String(36), _user_fk(), nullable=True),
        sa.Column('archived_by', sa.String(36), _user_fk(), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('username', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('fname', sa.String(), nullable=True),
        sa.Column('lname', sa.String(), nullable=True),
        sa.Column('preferred_name', sa.String(), nullable=True),
        sa.Column('password_hash', sa.Text(), nullable=True),
        sa.Column('is_admin', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('provider', sa.String(20), server_default='local', nullable=False),
        sa.Column('custom', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        *_extension_columns(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=False)

    op.create_table(
        'organizations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('custom', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        *_extension_columns(),
    )

    op.create_table(
        'organization_memberships',
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.username', ondelete='CASCADE'), primary_key=True),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint("role in ('read','write','admin')", name='ck_org_memberships_role'),
    )
    op.create_index('idx_org_memberships_user_id', 'organization_memberships', ['user_id'], unique=False)

    op.create_table(
        'projects',
        sa.Column('id', sa.String(73), primary_key=True),
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('visibility', sa.String(16), server_default='private', nullable=False),
        sa.Column('custom', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        *_extension_columns(),
        sa.CheckConstraint("visibility in ('internal','private')", name='ck_projects_visibility'),
    )
    op.create_index('idx_projects_organization_id', 'projects', ['organization_id'], unique=False)

    op.create_table(
        'project_memberships',
        sa.Column('project_id', sa.String(73), sa.ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.username', ondelete='CASCADE'), primary_key=True),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint("role in ('read','write','admin')", name='ck_project_memberships_role'),
    )
    op.create_index('idx_project_memberships_user_id', 'project_memberships', ['user_id'], unique=False)

    op.create_table(
        'branches',
        sa.Column('id', sa.String(110), primary_key=True),
        sa.Column('project_id', sa.String(73), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('source_id', sa.String(110), sa.ForeignKey('branches.id', ondelete='SET NULL'), nullable=True),
        sa.Column('tag', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('custom', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        *_extension_columns(),
    )
    op.create_index('idx_branches_project_id', 'branches', ['project_id'], unique=False)

    op.create_table(
        'elements',
        sa.Column('id', sa.String(180), primary_key=True),
        sa.Column('branch_id', sa.String(110), sa.ForeignKey('branches.id', ondelete='CASCADE'), nullable=False),
        sa.Column('project_id', sa.String(73), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('element_type', sa.String(32), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('documentation', sa.Text(), nullable=True),
        sa.Column('parent_id', sa.String(180), nullable=True),
        sa.Column('source_id', sa.String(180), nullable=True),
        sa.Column('target_id', sa.String(180), nullable=True),
        sa.Column('custom', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        *_extension_columns(),
    )
    op.create_index('idx_elements_branch_id', 'elements', ['branch_id'], unique=False)
    op.create_index('idx_elements_parent_id', 'elements', ['parent_id'], unique=False)
    op.create_index('idx_elements_source_id', 'elements', ['source_id'], unique=False)
    op.create_index('idx_elements_target_id', 'elements', ['target_id'], unique=False)

    op.create_table(
        'webhooks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('webhook_type', sa.String(16), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('triggers', postgresql.JSONB(astext_type=sa.Text()), server_default='[]', nullable=False),
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=True),
        sa.Column('project_id', sa.String(73), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=True),
        sa.Column('branch_id', sa.String(110), sa.ForeignKey('branches.id', ondelete='CASCADE'), nullable=True),
        sa.Column('responses', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('token_hash', sa.Text(), nullable=True),
        sa.Column('token_location', sa.String(), nullable=True),
        sa.Column('custom', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        *_extension_columns(),
    )
    op.create_index('idx_webhooks_scope', 'webhooks', ['organization_id', 'project_id', 'branch_id'], unique=False)

    op.create_table(
        'artifacts',
        sa.Column('id', sa.String(140), primary_key=True),
        sa.Column('project_id', sa.String(73), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('filename', sa.String(), nullable=False),
        sa.Column('content_type', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('custom', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        *_extension_columns(),
    )
    op.create_index('idx_artifacts_project_id', 'artifacts', ['project_id'], unique=False)

    op.create_table(
        'artifact_blobs',
        sa.Column('hash', sa.String(64), primary_key=True),
        sa.Column('data', sa.LargeBinary(), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    )

    op.create_table(
        'artifact_versions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('artifact_id', sa.String(140), sa.ForeignKey('artifacts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('hash', sa.String(64), sa.ForeignKey('artifact_blobs.hash'), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.String(36), _user_fk(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('artifact_id', 'number', name='uq_artifact_versions_number'),
    )
    op.create_index('idx_artifact_versions_hash', 'artifact_versions', ['hash'], unique=False)

    op.create_table(
        'api_tokens',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.username', ondelete='CASCADE'), nullable=False),
        sa.Column('token_id', sa.String(64), nullable=False, unique=True),
        sa.Column('token_hash', sa.Text(), nullable=False),
        sa.Column('name', sa.String(100), server_default='login', nullable=False),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('last_used_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('revoked_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index('idx_api_tokens_user_created', 'api_tokens', ['user_id', 'created_at'], unique=False)
    op.create_index('idx_api_tokens_status', 'api_tokens', ['status'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('organization_id', sa.String(36), nullable=True),
        sa.Column('actor_user_id', sa.String(36), nullable=True),
        sa.Column('action_type', sa.Text(), nullable=False),
        sa.Column('target_type', sa.Text(), nullable=True),
        sa.Column('target_id', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_audit_logs_organization_id_created_at', 'audit_logs', ['organization_id', 'created_at'], unique=False)
    op.create_index('ix_audit_logs_actor_user_id_created_at', 'audit_logs', ['actor_user_id', 'created_at'], unique=False)
    op.create_index('ix_audit_logs_action_type', 'audit_logs', ['action_type'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('audit_logs')
    op.drop_table('api_tokens')
    op.drop_table('artifact_versions')
    op.drop_table('artifact_blobs')
    op.drop_table('artifacts')
    op.drop_table('webhooks')
    op.drop_table('elements')
    op.drop_table('branches')
    op.drop_table('project_memberships')
    op.drop_table('projects')
    op.drop_table('organization_memberships')
    op.drop_table('organizations')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
