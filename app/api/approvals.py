# app/api/approvals.py
# (Approval workflow configuration and approval request routes.)

from flask import Blueprint, request, g
from app.jwt_auth import require_jwt
from app.utils import _handle_service_result, to_bool
from app.services.ratelimit import rate_limit
from app.services.approval_workflows import (
    list_workflows,
    create_workflow,
    update_workflow,
    delete_workflow,
)
from app.services.approval_requests import (
    list_requests,
    create_request,
    decide_request,
    cancel_request,
)

bp = Blueprint('approvals', __name__)


# --- WORKFLOWS (admin-configured) ---

@bp.route('/approval-workflows', methods=['GET'])
@rate_limit('standard')
@require_jwt
def list_workflows_route():
    result = list_workflows(
        request.args.get('org_id'),
        g.current_user,
        active_only=to_bool(request.args.get('active_only'))
    )
    return _handle_service_result(result)


@bp.route('/approval-workflows', methods=['POST'])
@rate_limit('standard')
@require_jwt
def create_workflow_route():
    result = create_workflow(request.get_json(silent=True) or {}, g.current_user)
    return _handle_service_result(result)


@bp.route('/approval-workflows/<string:workflow_id>', methods=['PATCH'])
@rate_limit('standard')
@require_jwt
def update_workflow_route(workflow_id):
    result = update_workflow(workflow_id, request.get_json(silent=True) or {}, g.current_user)
    return _handle_service_result(result)


@bp.route('/approval-workflows/<string:workflow_id>', methods=['DELETE'])
@rate_limit('standard')
@require_jwt
def delete_workflow_route(workflow_id):
    result = delete_workflow(workflow_id, g.current_user)
    return _handle_service_result(result)


# --- REQUESTS ---

@bp.route('/approval-requests', methods=['GET'])
@rate_limit('standard')
@require_jwt
def list_requests_route():
    result = list_requests(
        request.args.get('org_id'),
        g.current_user,
        status=request.args.get('status'),
        grant_id=request.args.get('grant_id'),
        pending_for_user=to_bool(request.args.get('pending_for_user'))
    )
    return _handle_service_result(result)


@bp.route('/approval-requests', methods=['POST'])
@rate_limit('standard')
@require_jwt
def create_request_route():
    """Requests a stage change. Returns 201, or 200 when auto-approved for an admin."""
    result = create_request(request.get_json(silent=True) or {}, g.current_user)
    return _handle_service_result(result)


@bp.route('/approval-requests/<string:request_id>', methods=['PATCH'])
@rate_limit('standard')
@require_jwt
def decide_request_route(request_id):
    """Records an approver's decision: {"decision": "approved"|"rejected", "comments": "..."}"""
    result = decide_request(request_id, request.get_json(silent=True) or {}, g.current_user)
    return _handle_service_result(result)


@bp.route('/approval-requests/<string:request_id>', methods=['DELETE'])
@rate_limit('standard')
@require_jwt
def cancel_request_route(request_id):
    result = cancel_request(request_id, g.current_user)
    return _handle_service_result(result)
