"""Initial schema: organizations, user profiles, grant pipeline

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """
    Creates the multi-tenant core: organizations with their settings,
    user profiles mirrored from Supabase Auth, memberships, saved grants,
    grant tasks and threaded comments.
    """
    op.create_table(
        'organizations',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'organization_settings',
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), primary_key=True),
        sa.Column('plan_name', sa.String(length=32), nullable=False, server_default='free'),
        sa.Column('plan_status', sa.String(length=32), nullable=False, server_default='active'),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('next_renewal_at', sa.DateTime(), nullable=True),
        sa.Column('require_2fa_for_admins', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('require_2fa_for_all', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ics_token', sa.String(length=64), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'user_profiles',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('is_platform_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_user_profiles_email', 'user_profiles', ['email'])

    op.create_table(
        'org_members',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='contributor'),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('org_id', 'user_id', name='uq_org_members_org_user'),
    )
    op.create_index('ix_org_members_org_id', 'org_members', ['org_id'])
    op.create_index('ix_org_members_user_id', 'org_members', ['user_id'])

    op.create_table(
        'org_grants_saved',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('external_source', sa.String(length=64), nullable=False, server_default='grants.gov'),
        sa.Column('external_id', sa.String(length=128), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('agency', sa.String(length=255), nullable=True),
        sa.Column('program', sa.String(length=255), nullable=True),
        sa.Column('aln', sa.String(length=64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('open_date', sa.Date(), nullable=True),
        sa.Column('close_date', sa.Date(), nullable=True),
        sa.Column('loi_deadline', sa.Date(), nullable=True),
        sa.Column('internal_deadline', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='researching'),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='medium'),
        sa.Column('assigned_to', sa.String(length=36), nullable=True),
        sa.Column('saved_at', sa.DateTime(), nullable=False),
        sa.Column('stage_updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('org_id', 'external_id', name='uq_grants_org_external'),
    )
    op.create_index('ix_org_grants_saved_org_id', 'org_grants_saved', ['org_id'])
    op.create_index('ix_org_grants_saved_close_date', 'org_grants_saved', ['close_date'])

    op.create_table(
        'grant_tasks',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('grant_id', sa.String(length=36), sa.ForeignKey('org_grants_saved.id'), nullable=False),
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('task_type', sa.String(length=64), nullable=False, server_default='custom'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('assigned_to', sa.String(length=36), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=36), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_grant_tasks_grant_id', 'grant_tasks', ['grant_id'])

    op.create_table(
        'grant_comments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('grant_id', sa.String(length=36), sa.ForeignKey('org_grants_saved.id'), nullable=False),
        sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('parent_comment_id', sa.String(length=36), sa.ForeignKey('grant_comments.id', ondelete='CASCADE'),
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
    op.create_index('ix_grant_comments_grant_id', 'grant_comments', ['grant_id'])


def downgrade():
    op.drop_index('ix_grant_comments_grant_id', table_name='grant_comments')
    op.drop_table('grant_comments')
    op.drop_index('ix_grant_tasks_grant_id', table_name='grant_tasks')
    op.drop_table('grant_tasks')
    op.drop_index('ix_org_grants_saved_close_date', table_name='org_grants_saved')
    op.drop_index('ix_org_grants_saved_org_id', table_name='org_grants_saved')
    op.drop_table('org_grants_saved')
    op.drop_index('ix_org_members_user_id', table_name='org_members')
    op.drop_index('ix_org_members_org_id', table_name='org_members')
    op.drop_table('org_members')
    op.drop_index('ix_user_profiles_email', table_name='user_profiles')
    op.drop_table('user_profiles')
    op.drop_table('organization_settings')
    op.drop_table('organizations')
