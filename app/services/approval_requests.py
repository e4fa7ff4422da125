# app/services/approval_requests.py
"""
Approval requests: the state machine that gates grant stage changes.

    pending --(all levels satisfied)--> approved   (grant moves to to_stage)
    pending --(any approver rejects)--> rejected
    pending --(requester/admin)-------> cancelled
    pending --(expires_at passed)-----> cancelled

A request starts at level 1. Each level is satisfied once
'required_approvers' of its approvers have approved; with
require_all_levels the request then advances to the next level,
otherwise the first satisfied level completes it.
"""

from datetime import timedelta
from flask import current_app
from sqlalchemy import and_
from app import db
from app.models import (
    ApprovalRequest,
    ApprovalRequestApprover,
    Grant,
    OrgMember,
    UserProfile,
    utcnow,
)
from app.jwt_auth import require_org_member, is_org_admin
from app.utils import server_error
from app.services.approval_workflows import find_active_workflow
from app.services.notifications import create_in_app_notifications
from app.services.activity import snapshot_grant, log_grant_changes
from app.services.email_service import send_approval_request_email, send_approval_decision_email

VALID_DECISIONS = ('approved', 'rejected')


def _approvals_url(request_id):
    return f"{current_app.config['APP_BASE_URL']}/approvals?request={request_id}"


def resolve_level_approvers(workflow, level_config, org_id, requester_id):
    """
    Returns the user ids that may decide at a level: the level's
    specific_users when given, otherwise every org member holding the
    level's role. The requester is excluded unless self-approval is allowed.
    """
    specific_users = level_config.get('specific_users') or []
    if specific_users:
        candidates = list(dict.fromkeys(specific_users))
    else:
        members = (OrgMember.query
                   .filter_by(org_id=org_id, role=level_config['role'])
                   .order_by(OrgMember.joined_at.asc())
                   .all())
        candidates = [m.user_id for m in members]

    if not workflow.allow_self_approval:
        candidates = [uid for uid in candidates if uid != requester_id]
    return candidates


def _notify_level_approvers(approval_request, level, requester_name):
    """In-app notification and email for every approver at a level."""
    approver_ids = [a.user_id for a in approval_request.approvers if a.approval_level == level]
    if not approver_ids:
        return

    grant = approval_request.grant
    create_in_app_notifications(
        approver_ids,
        notification_type='approval_request',
        title='Approval requested',
        message=(f"{requester_name} requested to move \"{grant.title}\" from "
                 f"{approval_request.from_stage} to {approval_request.to_stage}"),
        org_id=approval_request.org_id,
        related_grant_id=grant.id,
        related_request_id=approval_request.id,
        action_url=_approvals_url(approval_request.id),
    )

    emails = [p.email for p in UserProfile.query.filter(UserProfile.id.in_(approver_ids)).all()]
    send_approval_request_email(
        emails, requester_name, grant.title,
        approval_request.from_stage, approval_request.to_stage, approval_request.id
    )


def _notify_requester(approval_request):
    """Tells the requester about the final outcome."""
    grant = approval_request.grant
    create_in_app_notifications(
        [approval_request.requested_by],
        notification_type=f"approval_{approval_request.status}",
        title=f"Approval request {approval_request.status}",
        message=f"Your request to move \"{grant.title}\" to {approval_request.to_stage} was {approval_request.status}",
        org_id=approval_request.org_id,
        related_grant_id=grant.id,
        related_request_id=approval_request.id,
        action_url=_approvals_url(approval_request.id),
    )

    requester = db.session.get(UserProfile, approval_request.requested_by)
    if requester is not None:
        send_approval_decision_email(
            requester.email, grant.title, approval_request.status,
            approval_request.to_stage, approval_request.rejection_reason
        )


def _move_grant(grant, to_stage, user_id):
    before = snapshot_grant(grant)
    grant.status = to_stage
    grant.stage_updated_at = utcnow()
    log_grant_changes(grant, before, user_id)


# --- QUERIES ---

def list_requests(org_id, user, status=None, grant_id=None, pending_for_user=False):
    if not org_id:
        return {"success": False, "error": "org_id is required"}, 400
    require_org_member(org_id, user)

    query = ApprovalRequest.query.filter(ApprovalRequest.org_id == org_id)
    if status:
        query = query.filter(ApprovalRequest.status == status)
    if grant_id:
        query = query.filter(ApprovalRequest.grant_id == grant_id)
    if pending_for_user:
        query = (query
                 .join(ApprovalRequestApprover, and_(
                     ApprovalRequestApprover.request_id == ApprovalRequest.id,
                     ApprovalRequestApprover.approval_level == ApprovalRequest.current_approval_level,
                 ))
                 .filter(ApprovalRequest.status == 'pending',
                         ApprovalRequestApprover.user_id == user.id,
                         ApprovalRequestApprover.decision.is_(None)))

    requests = query.order_by(ApprovalRequest.requested_at.desc()).all()
    return {"success": True, "requests": [r.to_dict(include_approvers=True) for r in requests]}


# --- TRANSITIONS ---

def create_request(data, user):
    grant_id = data.get('grant_id')
    from_stage = data.get('from_stage')
    to_stage = data.get('to_stage')
    if not grant_id or not from_stage or not to_stage:
        return {"success": False, "error": "Missing required fields",
                "message": "grant_id, from_stage, and to_stage are required"}, 400

    grant = db.session.get(Grant, grant_id)
    if grant is None:
        return {"success": False, "error": "Grant not found"}, 404

    membership = require_org_member(grant.org_id, user)

    if grant.status != from_stage:
        return {"success": False,
                "error": f"Grant is not in {from_stage} stage. Current stage: {grant.status}"}, 400

    workflow = find_active_workflow(grant.org_id, from_stage, to_stage)
    if workflow is None:
        return {"success": False,
                "error": "No approval workflow configured for this stage transition",
                "suggestion": "The stage change may not require approval"}, 404

    try:
        if workflow.auto_approve_admin and membership.role == 'admin':
            _move_grant(grant, to_stage, user.id)
            db.session.commit()
            current_app.logger.info(
                f"Stage change {from_stage} -> {to_stage} for grant {grant.id} auto-approved for admin {user.id}"
            )
            return {"success": True, "auto_approved": True,
                    "message": "Stage change auto-approved for admin", "grant": grant.to_dict()}

        existing = ApprovalRequest.query.filter_by(grant_id=grant.id, status='pending').first()
        if existing is not None:
            return {"success": False,
                    "error": "A pending approval request already exists for this grant",
                    "request_id": existing.id}, 409

        # A level without approvers can never be satisfied
        level_approvers = {}
        for level_config in workflow.approval_chain:
            approvers = resolve_level_approvers(workflow, level_config, grant.org_id, user.id)
            if not approvers:
                return {"success": False,
                        "error": f"No eligible approvers for approval level {level_config['level']}"}, 400
            level_approvers[level_config['level']] = approvers

        now = utcnow()
        approval_request = ApprovalRequest(
            org_id=grant.org_id,
            grant_id=grant.id,
            workflow_id=workflow.id,
            from_stage=from_stage,
            to_stage=to_stage,
            requested_by=user.id,
            request_notes=data.get('request_notes'),
            status='pending',
            current_approval_level=1,
            approvals=[],
            requested_at=now,
            expires_at=now + timedelta(days=current_app.config['APPROVAL_REQUEST_TTL_DAYS']),
        )
        db.session.add(approval_request)
        db.session.flush()

        for level, approver_ids in level_approvers.items():
            for approver_id in approver_ids:
                db.session.add(ApprovalRequestApprover(
                    request_id=approval_request.id,
                    approval_level=level,
                    user_id=approver_id,
                ))
        db.session.flush()
        db.session.refresh(approval_request)

        _notify_level_approvers(approval_request, 1, user.full_name)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error creating approval request for grant {grant_id}")

    current_app.logger.info(
        f"Approval request {approval_request.id} created for grant {grant.id} "
        f"({from_stage} -> {to_stage}) by {user.id}"
    )
    return {"success": True, "request": approval_request.to_dict(include_approvers=True), "_status": 201}


def decide_request(request_id, data, user):
    decision = data.get('decision')
    comments = data.get('comments')
    if decision not in VALID_DECISIONS:
        return {"success": False, "error": "decision must be 'approved' or 'rejected'"}, 400

    approval_request = db.session.get(ApprovalRequest, request_id)
    if approval_request is None:
        return {"success": False, "error": "Approval request not found"}, 404

    require_org_member(approval_request.org_id, user)

    if approval_request.status != 'pending':
        return {"success": False, "error": f"Request is already {approval_request.status}"}, 400

    now = utcnow()
    try:
        if approval_request.expires_at is not None and approval_request.expires_at < now:
            approval_request.status = 'cancelled'
            approval_request.completed_at = now
            db.session.commit()
            return {"success": False, "error": "Request has expired"}, 400

        level = approval_request.current_approval_level
        approver = ApprovalRequestApprover.query.filter_by(
            request_id=approval_request.id, approval_level=level, user_id=user.id
        ).first()
        if approver is None:
            return {"success": False, "error": "You are not an approver for the current approval level"}, 403
        if approver.decision is not None:
            return {"success": False, "error": "You have already made a decision on this request"}, 400

        approver.decision = decision
        approver.has_approved = decision == 'approved'
        approver.decided_at = now
        approver.comments = comments

        # Reassign so the JSON column is flagged dirty
        approval_request.approvals = list(approval_request.approvals or []) + [{
            'level': level,
            'user_id': user.id,
            'decision': decision,
            'comments': comments,
            'timestamp': now.isoformat(),
        }]

        if decision == 'rejected':
            approval_request.status = 'rejected'
            approval_request.rejection_reason = comments
            approval_request.completed_at = now
            _notify_requester(approval_request)
            db.session.commit()
            current_app.logger.info(f"Approval request {request_id} rejected by {user.id} at level {level}")
            return {"success": True, "message": "Approval request rejected",
                    "request": approval_request.to_dict(include_approvers=True)}

        workflow = approval_request.workflow
        level_config = workflow.level_config(level)
        if level_config is None:
            db.session.rollback()
            current_app.logger.error(
                f"Approval request {request_id}: workflow {workflow.id} has no config for level {level}"
            )
            return {"success": False, "error": "Invalid approval chain configuration"}, 500

        required = level_config.get('required_approvers') or 1
        db.session.flush()
        approvals_count = ApprovalRequestApprover.query.filter_by(
            request_id=approval_request.id, approval_level=level, decision='approved'
        ).count()

        if approvals_count < required:
            db.session.commit()
            return {
                "success": True,
                "message": f"Approval recorded ({approvals_count}/{required} required)",
                "approvals_count": approvals_count,
                "required_approvals": required,
                "request": approval_request.to_dict(include_approvers=True),
            }

        next_level = level + 1
        if workflow.require_all_levels and workflow.level_config(next_level) is not None:
            approval_request.current_approval_level = next_level
            requester = db.session.get(UserProfile, approval_request.requested_by)
            _notify_level_approvers(approval_request, next_level,
                                    requester.full_name if requester else 'A teammate')
            db.session.commit()
            current_app.logger.info(f"Approval request {request_id} advanced to level {next_level}")
            return {
                "success": True,
                "message": f"Approved. Moved to level {next_level}",
                "next_level": next_level,
                "request": approval_request.to_dict(include_approvers=True),
            }

        approval_request.status = 'approved'
        approval_request.completed_at = now
        _move_grant(approval_request.grant, approval_request.to_stage, user.id)
        _notify_requester(approval_request)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error recording decision on approval request {request_id}")

    current_app.logger.info(
        f"Approval request {request_id} fully approved; grant {approval_request.grant_id} "
        f"moved to {approval_request.to_stage}"
    )
    return {
        "success": True,
        "message": f"Request fully approved. Grant moved to {approval_request.to_stage}",
        "new_stage": approval_request.to_stage,
        "request": approval_request.to_dict(include_approvers=True),
    }


def cancel_request(request_id, user):
    approval_request = db.session.get(ApprovalRequest, request_id)
    if approval_request is None:
        return {"success": False, "error": "Approval request not found"}, 404

    require_org_member(approval_request.org_id, user)

    if approval_request.requested_by != user.id and not is_org_admin(approval_request.org_id, user.id):
        return {"success": False, "error": "Only the requester or an organization admin can cancel this request"}, 403

    if approval_request.status != 'pending':
        return {"success": False, "error": f"Cannot cancel a request that is {approval_request.status}"}, 400

    try:
        approval_request.status = 'cancelled'
        approval_request.completed_at = utcnow()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error cancelling approval request {request_id}")

    current_app.logger.info(f"Approval request {request_id} cancelled by {user.id}")
    return {"success": True, "message": "Approval request cancelled"}


def expire_stale_requests():
    """Cancels pending requests past expires_at. Returns the number cancelled."""
    now = utcnow()
    stale = ApprovalRequest.query.filter(
        ApprovalRequest.status == 'pending',
        ApprovalRequest.expires_at.isnot(None),
        ApprovalRequest.expires_at < now,
    ).all()

    for approval_request in stale:
        approval_request.status = 'cancelled'
        approval_request.completed_at = now
    db.session.commit()
    return len(stale)
