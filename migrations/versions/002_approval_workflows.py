"""Add approval workflows, requests and per-level approvers

Revision ID: 002_approval_workflows
Revises: 001_initial_schema
Create Date: 2025-02-10 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_approval_workflows'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'approval_workflows',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('from_stage', sa.String(length=32), nullable=False),
        sa.Column('to_stage', sa.String(length=32), nullable=False),
        sa.Column('approval_chain', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('require_all_levels', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('allow_self_approval', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_approve_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_approval_workflows_org_id', 'approval_workflows', ['org_id'])

    op.create_table(
        'approval_requests',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('grant_id', sa.String(length=36), sa.ForeignKey('org_grants_saved.id'), nullable=False),
        sa.Column('workflow_id', sa.String(length=36), sa.ForeignKey('approval_workflows.id'), nullable=False),
        sa.Column('from_stage', sa.String(length=32), nullable=False),
        sa.Column('to_stage', sa.String(length=32), nullable=False),
        sa.Column('requested_by', sa.String(length=36), nullable=False),
        sa.Column('request_notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('current_approval_level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('approvals', sa.JSON(), nullable=False),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_approval_requests_org_id', 'approval_requests', ['org_id'])
    op.create_index('ix_approval_requests_grant_id', 'approval_requests', ['grant_id'])
    op.create_index('ix_approval_requests_status', 'approval_requests', ['status'])

    op.create_table(
        'approval_request_approvers',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('request_id', sa.String(length=36), sa.ForeignKey('approval_requests.id'), nullable=False),
        sa.Column('approval_level', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('has_approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('decision', sa.String(length=16), nullable=True),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.UniqueConstraint('request_id', 'approval_level', 'user_id', name='uq_request_level_user'),
    )
    op.create_index('ix_approval_request_approvers_request_id', 'approval_request_approvers', ['request_id'])
    op.create_index('ix_approval_request_approvers_user_id', 'approval_request_approvers', ['user_id'])


def downgrade():
    op.drop_index('ix_approval_request_approvers_user_id', table_name='approval_request_approvers')
    op.drop_index('ix_approval_request_approvers_request_id', table_name='approval_request_approvers')
    op.drop_table('approval_request_approvers')
    op.drop_index('ix_approval_requests_status', table_name='approval_requests')
    op.drop_index('ix_approval_requests_grant_id', table_name='approval_requests')
    op.drop_index('ix_approval_requests_org_id', table_name='approval_requests')
    op.drop_table('approval_requests')
    op.drop_index('ix_approval_workflows_org_id', table_name='approval_workflows')
    op.drop_table('approval_workflows')
