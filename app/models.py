# models.py

import uuid
import secrets
from datetime import datetime, timezone
from . import db
# --------------------------------------------------

# This file defines the structure of the database tables using Python classes.
# SQLAlchemy will translate these classes into actual database tables.
# All timestamps are stored as naive UTC datetimes.


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value is not None else None


# --- 1. ORGANIZATIONS & USERS ---

class Organization(db.Model):
    __tablename__ = 'organizations'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    settings = db.relationship('OrganizationSettings', backref='organization', uselist=False,
                               cascade="all, delete-orphan")
    members = db.relationship('OrgMember', backref='organization', lazy=True,
                              cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'created_at': _iso(self.created_at),
        }


class OrganizationSettings(db.Model):
    """
    Per-organization plan, security policy and calendar feed token.
    One row per organization (org_id is the primary key).
    """
    __tablename__ = 'organization_settings'

    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), primary_key=True)
    plan_name = db.Column(db.String(32), nullable=False, default='free')
    plan_status = db.Column(db.String(32), nullable=False, default='active')
    trial_ends_at = db.Column(db.DateTime, nullable=True)
    next_renewal_at = db.Column(db.DateTime, nullable=True)
    require_2fa_for_admins = db.Column(db.Boolean, nullable=False, default=False)
    require_2fa_for_all = db.Column(db.Boolean, nullable=False, default=False)
    ics_token = db.Column(db.String(64), nullable=False, default=lambda: secrets.token_urlsafe(24))
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'org_id': self.org_id,
            'plan_name': self.plan_name,
            'plan_status': self.plan_status,
            'trial_ends_at': _iso(self.trial_ends_at),
            'next_renewal_at': _iso(self.next_renewal_at),
            'require_2fa_for_admins': self.require_2fa_for_admins,
            'require_2fa_for_all': self.require_2fa_for_all,
            'updated_at': _iso(self.updated_at),
        }


class UserProfile(db.Model):
    """
    Local mirror of a Supabase Auth user.
    Rows are created/synced just-in-time from JWT claims (see jit_provisioning).
    Holds the user's two-factor state; the TOTP secret is Fernet-encrypted.
    """
    __tablename__ = 'user_profiles'

    # Supabase UUID from the JWT 'sub' claim
    id = db.Column(db.String(36), primary_key=True)
    email = db.Column(db.String(255), index=True, nullable=False)
    full_name = db.Column(db.String(255))
    is_platform_admin = db.Column(db.Boolean, nullable=False, default=False)

    totp_secret = db.Column(db.Text, nullable=True)
    totp_enabled = db.Column(db.Boolean, nullable=False, default=False)
    totp_verified_at = db.Column(db.DateTime, nullable=True)
    failed_2fa_attempts = db.Column(db.Integer, nullable=False, default=0)
    last_failed_2fa_attempt = db.Column(db.DateTime, nullable=True)
    last_2fa_success = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        # Never expose totp_secret
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'is_platform_admin': self.is_platform_admin,
            'totp_enabled': self.totp_enabled,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<UserProfile {self.email}>'


class OrgMember(db.Model):
    __tablename__ = 'org_members'
    __table_args__ = (db.UniqueConstraint('org_id', 'user_id', name='uq_org_members_org_user'),)

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey('user_profiles.id'), nullable=False, index=True)
    # 'admin' or 'contributor'
    role = db.Column(db.String(20), nullable=False, default='contributor')
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship('UserProfile', lazy='joined')

    def to_dict(self):
        return {
            'org_id': self.org_id,
            'user_id': self.user_id,
            'role': self.role,
            'joined_at': _iso(self.joined_at),
        }


# --- 2. GRANT PIPELINE ---

class Grant(db.Model):
    """A funding opportunity saved to an organization's pipeline."""
    __tablename__ = 'org_grants_saved'
    __table_args__ = (db.UniqueConstraint('org_id', 'external_id', name='uq_grants_org_external'),)

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey('user_profiles.id'), nullable=False)
    external_source = db.Column(db.String(64), nullable=False, default='grants.gov')
    external_id = db.Column(db.String(128), nullable=False)
    title = db.Column(db.String(500), nullable=False)
    agency = db.Column(db.String(255))
    program = db.Column(db.String(255))
    aln = db.Column(db.String(64))
    description = db.Column(db.Text)
    notes = db.Column(db.Text)
    open_date = db.Column(db.Date)
    close_date = db.Column(db.Date, index=True)
    loi_deadline = db.Column(db.Date)
    internal_deadline = db.Column(db.Date)
    # Pipeline stage: researching -> drafting -> submitted -> awarded/rejected/withdrawn
    status = db.Column(db.String(32), nullable=False, default='researching')
    priority = db.Column(db.String(16), nullable=False, default='medium')
    assigned_to = db.Column(db.String(36), nullable=True)
    saved_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    stage_updated_at = db.Column(db.DateTime, nullable=True)

    tasks = db.relationship('GrantTask', backref='grant', lazy=True, cascade="all, delete-orphan")
    comments = db.relationship('GrantComment', backref='grant', lazy=True, cascade="all, delete-orphan")
    activity = db.relationship('GrantActivity', backref='grant', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'user_id': self.user_id,
            'external_source': self.external_source,
            'external_id': self.external_id,
            'title': self.title,
            'agency': self.agency,
            'program': self.program,
            'aln': self.aln,
            'description': self.description,
            'notes': self.notes,
            'open_date': _iso(self.open_date),
            'close_date': _iso(self.close_date),
            'loi_deadline': _iso(self.loi_deadline),
            'internal_deadline': _iso(self.internal_deadline),
            'status': self.status,
            'priority': self.priority,
            'assigned_to': self.assigned_to,
            'saved_at': _iso(self.saved_at),
            'stage_updated_at': _iso(self.stage_updated_at),
        }


class GrantTask(db.Model):
    __tablename__ = 'grant_tasks'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    grant_id = db.Column(db.String(36), db.ForeignKey('org_grants_saved.id'), nullable=False, index=True)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    task_type = db.Column(db.String(64), nullable=False, default='custom')
    status = db.Column(db.String(32), nullable=False, default='pending')
    assigned_to = db.Column(db.String(36), nullable=True)
    due_date = db.Column(db.Date)
    position = db.Column(db.Integer, nullable=False, default=0)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text)
    created_by = db.Column(db.String(36), nullable=False)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    comments = db.relationship('TaskComment', backref='task', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'grant_id': self.grant_id,
            'org_id': self.org_id,
            'title': self.title,
            'description': self.description,
            'task_type': self.task_type,
            'status': self.status,
            'assigned_to': self.assigned_to,
            'due_date': _iso(self.due_date),
            'position': self.position,
            'is_required': self.is_required,
            'notes': self.notes,
            'created_by': self.created_by,
            'completed_at': _iso(self.completed_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class GrantComment(db.Model):
    __tablename__ = 'grant_comments'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    grant_id = db.Column(db.String(36), db.ForeignKey('org_grants_saved.id'), nullable=False, index=True)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey('user_profiles.id'), nullable=False)
    parent_comment_id = db.Column(db.String(36), db.ForeignKey('grant_comments.id', ondelete='CASCADE'), nullable=True)
    content = db.Column(db.Text, nullable=False)
    content_html = db.Column(db.Text)
    mentioned_user_ids = db.Column(db.JSON, nullable=False, default=list)
    is_edited = db.Column(db.Boolean, nullable=False, default=False)
    edited_at = db.Column(db.DateTime)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    author = db.relationship('UserProfile', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'grant_id': self.grant_id,
            'org_id': self.org_id,
            'user_id': self.user_id,
            'user_name': self.author.full_name if self.author else None,
            'parent_comment_id': self.parent_comment_id,
            'content': self.content,
            'content_html': self.content_html,
            'mentioned_user_ids': self.mentioned_user_ids or [],
            'is_edited': self.is_edited,
            'edited_at': _iso(self.edited_at),
            'created_at': _iso(self.created_at),
        }


class TaskComment(db.Model):
    """Discussion thread on a checklist task. Same shape as GrantComment."""
    __tablename__ = 'task_comments'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    task_id = db.Column(db.String(36), db.ForeignKey('grant_tasks.id', ondelete='CASCADE'),
                        nullable=False, index=True)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey('user_profiles.id'), nullable=False)
    parent_comment_id = db.Column(db.String(36), db.ForeignKey('task_comments.id', ondelete='CASCADE'), nullable=True)
    content = db.Column(db.Text, nullable=False)
    content_html = db.Column(db.Text)
    mentioned_user_ids = db.Column(db.JSON, nullable=False, default=list)
    is_edited = db.Column(db.Boolean, nullable=False, default=False)
    edited_at = db.Column(db.DateTime)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    author = db.relationship('UserProfile', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'task_id': self.task_id,
            'org_id': self.org_id,
            'user_id': self.user_id,
            'user_name': self.author.full_name if self.author else None,
            'parent_comment_id': self.parent_comment_id,
            'content': self.content,
            'content_html': self.content_html,
            'mentioned_user_ids': self.mentioned_user_ids or [],
            'is_edited': self.is_edited,
            'edited_at': _iso(self.edited_at),
            'created_at': _iso(self.created_at),
        }


class GrantActivity(db.Model):
    """
    Audit trail behind the activity feed.
    One row per logged change; field_name/old_value/new_value are set for field changes.
    """
    __tablename__ = 'grant_activity_log'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    grant_id = db.Column(db.String(36), db.ForeignKey('org_grants_saved.id', ondelete='CASCADE'),
                         nullable=False, index=True)
    user_id = db.Column(db.String(36), nullable=True, index=True)
    # saved | status_changed | priority_changed | assigned | note_added | note_updated
    # | note_deleted | task_added | task_completed | task_deleted
    action = db.Column(db.String(32), nullable=False, index=True)
    field_name = db.Column(db.String(64))
    old_value = db.Column(db.Text)
    new_value = db.Column(db.Text)
    details = db.Column('metadata', db.JSON, nullable=True)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'grant_id': self.grant_id,
            'user_id': self.user_id,
            'action': self.action,
            'field_name': self.field_name,
            'old_value': self.old_value,
            'new_value': self.new_value,
            'metadata': self.details or {},
            'description': self.description,
            'created_at': _iso(self.created_at),
        }


# --- 3. APPROVAL WORKFLOWS ---

class ApprovalWorkflow(db.Model):
    """
    Chain of approvers required to move a grant from one stage to another.

    approval_chain is a list of levels:
        [{"level": 1, "role": "admin", "required_approvers": 1, "specific_users": []}, ...]
    """
    __tablename__ = 'approval_workflows'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    from_stage = db.Column(db.String(32), nullable=False)
    to_stage = db.Column(db.String(32), nullable=False)
    approval_chain = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    require_all_levels = db.Column(db.Boolean, nullable=False, default=True)
    allow_self_approval = db.Column(db.Boolean, nullable=False, default=False)
    auto_approve_admin = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.String(36), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def level_config(self, level):
        """Returns the chain entry for a level, or None."""
        for entry in self.approval_chain or []:
            if entry.get('level') == level:
                return entry
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'name': self.name,
            'description': self.description,
            'from_stage': self.from_stage,
            'to_stage': self.to_stage,
            'approval_chain': self.approval_chain or [],
            'is_active': self.is_active,
            'require_all_levels': self.require_all_levels,
            'allow_self_approval': self.allow_self_approval,
            'auto_approve_admin': self.auto_approve_admin,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class ApprovalRequest(db.Model):
    __tablename__ = 'approval_requests'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    grant_id = db.Column(db.String(36), db.ForeignKey('org_grants_saved.id'), nullable=False, index=True)
    workflow_id = db.Column(db.String(36), db.ForeignKey('approval_workflows.id'), nullable=False)
    from_stage = db.Column(db.String(32), nullable=False)
    to_stage = db.Column(db.String(32), nullable=False)
    requested_by = db.Column(db.String(36), nullable=False)
    request_notes = db.Column(db.Text)
    # pending | approved | rejected | cancelled
    status = db.Column(db.String(16), nullable=False, default='pending', index=True)
    current_approval_level = db.Column(db.Integer, nullable=False, default=1)
    approvals = db.Column(db.JSON, nullable=False, default=list)
    rejection_reason = db.Column(db.Text)
    requested_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)

    workflow = db.relationship('ApprovalWorkflow', lazy='joined')
    grant = db.relationship('Grant', lazy='joined')
    approvers = db.relationship('ApprovalRequestApprover', backref='request', lazy=True,
                                cascade="all, delete-orphan",
                                order_by='ApprovalRequestApprover.approval_level')

    def to_dict(self, include_approvers=False):
        data = {
            'id': self.id,
            'org_id': self.org_id,
            'grant_id': self.grant_id,
            'grant_title': self.grant.title if self.grant else None,
            'workflow_id': self.workflow_id,
            'workflow_name': self.workflow.name if self.workflow else None,
            'from_stage': self.from_stage,
            'to_stage': self.to_stage,
            'requested_by': self.requested_by,
            'request_notes': self.request_notes,
            'status': self.status,
            'current_approval_level': self.current_approval_level,
            'approvals': self.approvals or [],
            'rejection_reason': self.rejection_reason,
            'requested_at': _iso(self.requested_at),
            'completed_at': _iso(self.completed_at),
            'expires_at': _iso(self.expires_at),
        }
        if include_approvers:
            data['approvers'] = [a.to_dict() for a in self.approvers]
        return data


class ApprovalRequestApprover(db.Model):
    __tablename__ = 'approval_request_approvers'
    __table_args__ = (
        db.UniqueConstraint('request_id', 'approval_level', 'user_id', name='uq_request_level_user'),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    request_id = db.Column(db.String(36), db.ForeignKey('approval_requests.id'), nullable=False, index=True)
    approval_level = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    has_approved = db.Column(db.Boolean, nullable=False, default=False)
    decision = db.Column(db.String(16))
    decided_at = db.Column(db.DateTime)
    comments = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id,
            'request_id': self.request_id,
            'approval_level': self.approval_level,
            'user_id': self.user_id,
            'has_approved': self.has_approved,
            'decision': self.decision,
            'decided_at': _iso(self.decided_at),
            'comments': self.comments,
        }


# --- 4. TWO-FACTOR AUTHENTICATION ---

class UserBackupCode(db.Model):
    __tablename__ = 'user_backup_codes'
    __table_args__ = (db.UniqueConstraint('user_id', 'code_hash', name='uq_backup_code_user_hash'),)

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('user_profiles.id'), nullable=False, index=True)
    # SHA-256 hex digest of the normalized code; plaintext is never stored
    code_hash = db.Column(db.String(64), nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime)
    used_from_ip = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class TwoFactorAuditLog(db.Model):
    __tablename__ = 'two_factor_audit_log'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('user_profiles.id'), nullable=False, index=True)
    # setup | verify_success | verify_fail | disable | backup_code_used | backup_codes_regenerated
    event_type = db.Column(db.String(32), nullable=False)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(512))
    details = db.Column('metadata', db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


# --- 5. INTEGRATIONS & NOTIFICATIONS ---

class Integration(db.Model):
    __tablename__ = 'org_integrations'
    __table_args__ = (db.UniqueConstraint('org_id', 'integration_type', name='uq_integration_org_type'),)

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    # slack | microsoft_teams | google_calendar
    integration_type = db.Column(db.String(32), nullable=False)
    access_token = db.Column(db.Text)
    refresh_token = db.Column(db.Text)
    token_expires_at = db.Column(db.DateTime)
    webhook_url = db.Column(db.Text)
    channel_id = db.Column(db.String(128))
    channel_name = db.Column(db.String(255))
    settings = db.Column(db.JSON, nullable=False, default=dict)
    connected_by = db.Column(db.String(36))
    connected_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        # Tokens and webhook secrets stay server-side
        return {
            'id': self.id,
            'org_id': self.org_id,
            'integration_type': self.integration_type,
            'channel_id': self.channel_id,
            'channel_name': self.channel_name,
            'settings': self.settings or {},
            'connected_by': self.connected_by,
            'connected_at': _iso(self.connected_at),
            'is_active': self.is_active,
            'has_webhook': bool(self.webhook_url),
        }


class OAuthStateToken(db.Model):
    __tablename__ = 'oauth_state_tokens'

    state_token = db.Column(db.String(128), primary_key=True)
    user_id = db.Column(db.String(36), nullable=False)
    org_id = db.Column(db.String(36), nullable=False)
    # google | slack | microsoft
    provider = db.Column(db.String(32), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime)


class InAppNotification(db.Model):
    __tablename__ = 'in_app_notifications'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    org_id = db.Column(db.String(36), nullable=True)
    type = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text)
    related_grant_id = db.Column(db.String(36))
    related_request_id = db.Column(db.String(36))
    action_url = db.Column(db.Text)
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'org_id': self.org_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'related_grant_id': self.related_grant_id,
            'related_request_id': self.related_request_id,
            'action_url': self.action_url,
            'read_at': _iso(self.read_at),
            'created_at': _iso(self.created_at),
        }


# --- 6. AI SUMMARIES ---

class GrantAISummary(db.Model):
    __tablename__ = 'grant_ai_summaries'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    org_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False)
    grant_id = db.Column(db.String(36), db.ForeignKey('org_grants_saved.id'), nullable=False, index=True)
    summary = db.Column(db.JSON, nullable=False)
    model = db.Column(db.String(64), nullable=False)
    token_count = db.Column(db.Integer, nullable=False, default=0)
    processing_time_ms = db.Column(db.Integer, nullable=False, default=0)
    cost_usd = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String(16), nullable=False, default='completed')
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'org_id': self.org_id,
            'grant_id': self.grant_id,
            'summary': self.summary,
            'model': self.model,
            'token_count': self.token_count,
            'processing_time_ms': self.processing_time_ms,
            'cost_usd': self.cost_usd,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }
