# app/api/integrations.py

from flask import Blueprint, request, g
from app.jwt_auth import require_jwt
from app.utils import _handle_service_result
from app.services.ratelimit import rate_limit
from app.services.integrations import list_integrations, save_integration, delete_integration

bp = Blueprint('integrations', __name__)


@bp.route('/integrations', methods=['GET'])
@rate_limit('standard')
@require_jwt
def list_integrations_route():
    return _handle_service_result(list_integrations(request.args.get('org_id'), g.current_user))


@bp.route('/integrations', methods=['POST'])
@rate_limit('standard')
@require_jwt
def save_integration_route():
    """Connects (or reconnects) a webhook integration. Admin only."""
    return _handle_service_result(save_integration(request.get_json(silent=True) or {}, g.current_user))


@bp.route('/integrations', methods=['DELETE'])
@rate_limit('standard')
@require_jwt
def delete_integration_route():
    result = delete_integration(
        request.args.get('org_id'),
        request.args.get('integration_type'),
        g.current_user
    )
    return _handle_service_result(result)
