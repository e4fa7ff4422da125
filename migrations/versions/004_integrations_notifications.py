"""Add integrations, OAuth state, in-app notifications and NOFO summaries

Revision ID: 004_integrations
Revises: 003_two_factor_auth
Create Date: 2025-04-22 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '004_integrations'
down_revision = '003_two_factor_auth'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'org_integrations',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('integration_type', sa.String(length=32), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('webhook_url', sa.Text(), nullable=True),
        sa.Column('channel_id', sa.String(length=128), nullable=True),
        sa.Column('channel_name', sa.String(length=255), nullable=True),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('connected_by', sa.String(length=36), nullable=True),
        sa.Column('connected_at', sa.DateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('org_id', 'integration_type', name='uq_integration_org_type'),
    )
    op.create_index('ix_org_integrations_org_id', 'org_integrations', ['org_id'])

    op.create_table(
        'oauth_state_tokens',
        sa.Column('state_token', sa.String(length=128), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('org_id', sa.String(length=36), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'in_app_notifications',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('org_id', sa.String(length=36), nullable=True),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('related_grant_id', sa.String(length=36), nullable=True),
        sa.Column('related_request_id', sa.String(length=36), nullable=True),
        sa.Column('action_url', sa.Text(), nullable=True),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_in_app_notifications_user_id', 'in_app_notifications', ['user_id'])

    op.create_table(
        'grant_ai_summaries',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('grant_id', sa.String(length=36), sa.ForeignKey('org_grants_saved.id'), nullable=False),
        sa.Column('summary', sa.JSON(), nullable=False),
        sa.Column('model', sa.String(length=64), nullable=False),
        sa.Column('token_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processing_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_usd', sa.Float(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_grant_ai_summaries_grant_id', 'grant_ai_summaries', ['grant_id'])


def downgrade():
    op.drop_index('ix_grant_ai_summaries_grant_id', table_name='grant_ai_summaries')
    op.drop_table('grant_ai_summaries')
    op.drop_index('ix_in_app_notifications_user_id', table_name='in_app_notifications')
    op.drop_table('in_app_notifications')
    op.drop_table('oauth_state_tokens')
    op.drop_index('ix_org_integrations_org_id', table_name='org_integrations')
    op.drop_table('org_integrations')
