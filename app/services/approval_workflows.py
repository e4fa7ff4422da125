# app/services/approval_workflows.py
# Configuration of approval chains for grant stage transitions.

from flask import current_app
from app import db
from app.models import ApprovalWorkflow, ApprovalRequest
from app.jwt_auth import require_org_member, require_org_admin
from app.utils import server_error, to_bool

UPDATABLE_FIELDS = (
    'name', 'description', 'approval_chain', 'is_active',
    'require_all_levels', 'allow_self_approval', 'auto_approve_admin',
)
BOOLEAN_FIELDS = ('is_active', 'require_all_levels', 'allow_self_approval', 'auto_approve_admin')


def validate_approval_chain(chain):
    """
    Checks the shape of an approval chain.

    Returns:
        str or None: An error message, or None when the chain is valid
    """
    if not isinstance(chain, list) or not chain:
        return "approval_chain must be a non-empty array"

    roles = current_app.config['ORG_ROLES']
    seen_levels = set()
    for entry in chain:
        if not isinstance(entry, dict):
            return "Each approval level must be an object"

        level = entry.get('level')
        if not isinstance(level, int) or isinstance(level, bool) or level < 1:
            return "Each approval level needs a positive integer 'level'"
        if level in seen_levels:
            return f"Duplicate approval level {level}"
        seen_levels.add(level)

        if entry.get('role') not in roles:
            return f"Level {level}: role must be one of {', '.join(roles)}"

        required = entry.get('required_approvers', 1)
        if not isinstance(required, int) or isinstance(required, bool) or required < 1:
            return f"Level {level}: required_approvers must be at least 1"

        specific_users = entry.get('specific_users') or []
        if not isinstance(specific_users, list):
            return f"Level {level}: specific_users must be an array"

    # Levels are consecutive from 1 so "next level" is always level + 1
    if seen_levels != set(range(1, len(chain) + 1)):
        return "Approval levels must be numbered consecutively starting at 1"
    return None


def _normalize_chain(chain):
    return sorted(
        [{
            'level': entry['level'],
            'role': entry['role'],
            'required_approvers': entry.get('required_approvers', 1),
            'specific_users': list(entry.get('specific_users') or []),
        } for entry in chain],
        key=lambda entry: entry['level']
    )


def find_active_workflow(org_id, from_stage, to_stage, exclude_id=None):
    query = ApprovalWorkflow.query.filter_by(
        org_id=org_id, from_stage=from_stage, to_stage=to_stage, is_active=True
    )
    if exclude_id:
        query = query.filter(ApprovalWorkflow.id != exclude_id)
    return query.first()


def list_workflows(org_id, user, active_only=False):
    if not org_id:
        return {"success": False, "error": "org_id is required"}, 400
    require_org_member(org_id, user)

    query = ApprovalWorkflow.query.filter_by(org_id=org_id)
    if active_only:
        query = query.filter_by(is_active=True)
    workflows = query.order_by(ApprovalWorkflow.created_at.desc()).all()
    return {"success": True, "workflows": [w.to_dict() for w in workflows]}


def create_workflow(data, user):
    org_id = data.get('org_id')
    if not org_id or not data.get('name') or not data.get('from_stage') or not data.get('to_stage'):
        return {"success": False, "error": "Missing required fields",
                "message": "org_id, name, from_stage, and to_stage are required"}, 400

    require_org_admin(org_id, user)

    statuses = current_app.config['GRANT_STATUSES']
    from_stage, to_stage = data['from_stage'], data['to_stage']
    if from_stage not in statuses or to_stage not in statuses:
        return {"success": False, "error": f"Stages must be one of: {', '.join(statuses)}"}, 400
    if from_stage == to_stage:
        return {"success": False, "error": "from_stage and to_stage must be different"}, 400

    chain_error = validate_approval_chain(data.get('approval_chain'))
    if chain_error:
        return {"success": False, "error": chain_error}, 400

    is_active = to_bool(data.get('is_active', True))
    if is_active and find_active_workflow(org_id, from_stage, to_stage):
        return {"success": False,
                "error": "An active workflow already exists for this stage transition"}, 409

    try:
        workflow = ApprovalWorkflow(
            org_id=org_id,
            name=data['name'],
            description=data.get('description'),
            from_stage=from_stage,
            to_stage=to_stage,
            approval_chain=_normalize_chain(data['approval_chain']),
            is_active=is_active,
            require_all_levels=to_bool(data.get('require_all_levels', True)),
            allow_self_approval=to_bool(data.get('allow_self_approval', False)),
            auto_approve_admin=to_bool(data.get('auto_approve_admin', False)),
            created_by=user.id,
        )
        db.session.add(workflow)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error creating approval workflow for org {org_id}")

    current_app.logger.info(
        f"Approval workflow {workflow.id} ({from_stage} -> {to_stage}) created in org {org_id} by {user.id}"
    )
    return {"success": True, "workflow": workflow.to_dict(), "_status": 201}


def update_workflow(workflow_id, data, user):
    workflow = db.session.get(ApprovalWorkflow, workflow_id)
    if workflow is None:
        return {"success": False, "error": "Workflow not found"}, 404

    require_org_admin(workflow.org_id, user)

    updates = {field: data[field] for field in UPDATABLE_FIELDS if field in data}
    if not updates:
        return {"success": False, "error": "No valid fields to update"}, 400

    if 'approval_chain' in updates:
        chain_error = validate_approval_chain(updates['approval_chain'])
        if chain_error:
            return {"success": False, "error": chain_error}, 400
        updates['approval_chain'] = _normalize_chain(updates['approval_chain'])

    for field in BOOLEAN_FIELDS:
        if field in updates:
            updates[field] = to_bool(updates[field])

    if updates.get('is_active') and not workflow.is_active:
        if find_active_workflow(workflow.org_id, workflow.from_stage, workflow.to_stage, exclude_id=workflow.id):
            return {"success": False,
                    "error": "Another active workflow already exists for this stage transition"}, 409

    try:
        for field, value in updates.items():
            setattr(workflow, field, value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error updating approval workflow {workflow_id}")

    return {"success": True, "workflow": workflow.to_dict()}


def delete_workflow(workflow_id, user):
    workflow = db.session.get(ApprovalWorkflow, workflow_id)
    if workflow is None:
        return {"success": False, "error": "Workflow not found"}, 404

    require_org_admin(workflow.org_id, user)

    pending = ApprovalRequest.query.filter_by(workflow_id=workflow.id, status='pending').count()
    if pending:
        return {
            "success": False,
            "error": "Cannot delete workflow with pending approval requests",
            "pending_requests": pending,
            "suggestion": "Deactivate the workflow instead",
        }, 409

    try:
        # Completed requests cascade with the workflow
        for request_row in ApprovalRequest.query.filter_by(workflow_id=workflow.id).all():
            db.session.delete(request_row)
        db.session.delete(workflow)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error deleting approval workflow {workflow_id}")

    current_app.logger.info(f"Approval workflow {workflow_id} deleted by {user.id}")
    return {"success": True, "message": "Workflow deleted"}
