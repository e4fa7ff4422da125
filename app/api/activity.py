# app/api/activity.py
# (Pipeline activity feed.)

from flask import Blueprint, request, g
from app.jwt_auth import require_jwt
from app.utils import _handle_service_result
from app.services.ratelimit import rate_limit
from app.services.activity import list_activity

bp = Blueprint('activity', __name__)


@bp.route('/activity', methods=['GET'])
@rate_limit('standard')
@require_jwt
def list_activity_route():
    """?grant_id= | ?org_id= | neither (all of the caller's orgs); optional user_id, action, limit, offset."""
    result = list_activity(request.args, g.current_user)
    return _handle_service_result(result)
