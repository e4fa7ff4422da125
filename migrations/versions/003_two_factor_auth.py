"""Add TOTP two-factor authentication

Revision ID: 003_two_factor_auth
Revises: 002_approval_workflows
Create Date: 2025-03-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '003_two_factor_auth'
down_revision = '002_approval_workflows'
branch_labels = None
depends_on = None


def upgrade():
    """
    Adds 2FA state to user_profiles plus the backup code and audit tables.

    totp_secret holds a Fernet token, never the raw base32 secret.
    """
    with op.batch_alter_table('user_profiles', schema=None) as batch_op:
        batch_op.add_column(sa.Column('totp_secret', sa.Text(), nullable=True))
        batch_op.add_column(sa.Column('totp_enabled', sa.Boolean(), nullable=False, server_default=sa.false()))
        batch_op.add_column(sa.Column('totp_verified_at', sa.DateTime(), nullable=True))
        batch_op.add_column(sa.Column('failed_2fa_attempts', sa.Integer(), nullable=False, server_default='0'))
        batch_op.add_column(sa.Column('last_failed_2fa_attempt', sa.DateTime(), nullable=True))
        batch_op.add_column(sa.Column('last_2fa_success', sa.DateTime(), nullable=True))

    op.create_table(
        'user_backup_codes',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('code_hash', sa.String(length=64), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('used_from_ip', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'code_hash', name='uq_backup_code_user_hash'),
    )
    op.create_index('ix_user_backup_codes_user_id', 'user_backup_codes', ['user_id'])

    op.create_table(
        'two_factor_audit_log',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('event_type', sa.String(length=32), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_two_factor_audit_log_user_id', 'two_factor_audit_log', ['user_id'])


def downgrade():
    """
    WARNING: Drops every enrolled authenticator. Users will need to set up 2FA again.
    """
    op.drop_index('ix_two_factor_audit_log_user_id', table_name='two_factor_audit_log')
    op.drop_table('two_factor_audit_log')
    op.drop_index('ix_user_backup_codes_user_id', table_name='user_backup_codes')
    op.drop_table('user_backup_codes')

    with op.batch_alter_table('user_profiles', schema=None) as batch_op:
        batch_op.drop_column('last_2fa_success')
        batch_op.drop_column('last_failed_2fa_attempt')
        batch_op.drop_column('failed_2fa_attempts')
        batch_op.drop_column('totp_verified_at')
        batch_op.drop_column('totp_enabled')
        batch_op.drop_column('totp_secret')
