"""create_core_tables

Revision ID: 3f1a9c2d7b40
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _audit() -> list[sa.Column]:
    return [
        sa.Column('create_by', UUID(as_uuid=True), nullable=True),
        sa.Column('update_by', UUID(as_uuid=True), nullable=True),
    ]


def upgrade() -> None:
    """Create users, organizations, memberships, projects and roles."""
    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('avatar', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'organizations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('avatar', sa.String(length=500), nullable=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('project_num', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('member_num', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('role_num', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('allow_create_project', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('member_permission', sa.SmallInteger(), nullable=False, server_default='1'),
        *_timestamps(),
        *_audit(),
        sa.CheckConstraint('member_num >= 0', name='ck_organizations_member_num_non_negative'),
    )
    op.create_index('ix_organizations_name', 'organizations', ['name'], unique=True)
    op.create_index('ix_organizations_user_id', 'organizations', ['user_id'])

    user_org_role = sa.Enum('owner', 'member', name='user_org_role')
    op.create_table(
        'rel_user_organization',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('org_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', user_org_role, nullable=False, server_default='member'),
        *_timestamps(),
        *_audit(),
        sa.UniqueConstraint('org_id', 'user_id', name='uq_rel_user_organization_org_user'),
    )
    op.create_index('ix_rel_user_organization_org_id', 'rel_user_organization', ['org_id'])
    op.create_index('ix_rel_user_organization_user_id', 'rel_user_organization', ['user_id'])

    op.create_table(
        'projects',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('org_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('pic', sa.String(length=255), nullable=True),
        sa.Column('visibility', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        *_audit(),
    )
    op.create_index('ix_projects_org_id', 'projects', ['org_id'])

    op.create_table(
        'roles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('org_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('avatar', sa.String(length=255), nullable=True),
        *_timestamps(),
        *_audit(),
        sa.UniqueConstraint('org_id', 'name', name='uq_roles_org_name'),
    )
    op.create_index('ix_roles_org_id', 'roles', ['org_id'])


def downgrade() -> None:
    """Drop all core tables."""
    op.drop_index('ix_roles_org_id', table_name='roles')
    op.drop_table('roles')
    op.drop_index('ix_projects_org_id', table_name='projects')
    op.drop_table('projects')
    op.drop_index('ix_rel_user_organization_user_id', table_name='rel_user_organization')
    op.drop_index('ix_rel_user_organization_org_id', table_name='rel_user_organization')
    op.drop_table('rel_user_organization')
    sa.Enum(name='user_org_role').drop(op.get_bind(), checkfirst=True)
    op.drop_index('ix_organizations_user_id', table_name='organizations')
    op.drop_index('ix_organizations_name', table_name='organizations')
    op.drop_table('organizations')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
