"""Add task comments and the grant activity log

Revision ID: 005_task_comments_activity
Revises: 004_integrations
Create Date: 2025-05-06 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '005_task_comments_activity'
down_revision = '004_integrations'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'task_comments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('task_id', sa.String(length=36), sa.ForeignKey('grant_tasks.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('parent_comment_id', sa.String(length=36), sa.ForeignKey('task_comments.id', ondelete='CASCADE'),
                  nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('content_html', sa.Text(), nullable=True),
        sa.Column('mentioned_user_ids', sa.JSON(), nullable=False),
        sa.Column('is_edited', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('edited_at', sa.DateTime(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_task_comments_task_id', 'task_comments', ['task_id'])

    op.create_table(
        'grant_activity_log',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('grant_id', sa.String(length=36), sa.ForeignKey('org_grants_saved.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('field_name', sa.String(length=64), nullable=True),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_grant_activity_log_org_id', 'grant_activity_log', ['org_id'])
    op.create_index('ix_grant_activity_log_grant_id', 'grant_activity_log', ['grant_id'])
    op.create_index('ix_grant_activity_log_user_id', 'grant_activity_log', ['user_id'])
    op.create_index('ix_grant_activity_log_action', 'grant_activity_log', ['action'])
    op.create_index('ix_grant_activity_log_created_at', 'grant_activity_log', ['created_at'])


def downgrade():
    op.drop_index('ix_grant_activity_log_created_at', table_name='grant_activity_log')
    op.drop_index('ix_grant_activity_log_action', table_name='grant_activity_log')
    op.drop_index('ix_grant_activity_log_user_id', table_name='grant_activity_log')
    op.drop_index('ix_grant_activity_log_grant_id', table_name='grant_activity_log')
    op.drop_index('ix_grant_activity_log_org_id', table_name='grant_activity_log')
    op.drop_table('grant_activity_log')
    op.drop_index('ix_task_comments_task_id', table_name='task_comments')
    op.drop_table('task_comments')
