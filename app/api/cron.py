# app/api/cron.py
# (Scheduler entry points. Authorized with 'Authorization: Bearer <CRON_SECRET>'.)

from functools import wraps
from flask import Blueprint, request, jsonify, current_app
from app.jwt_auth import verify_cron_auth
from app.utils import _handle_service_result, get_client_ip
from app.services.cron import check_deadlines, expire_approvals

bp = Blueprint('cron', __name__)


def cron_auth_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not verify_cron_auth(request.headers.get('Authorization')):
            current_app.logger.warning(f"Unauthorized cron call to {request.path} from {get_client_ip()}")
            return jsonify({"success": False, "error": "Unauthorized", "error_code": 401}), 401
        return f(*args, **kwargs)
    return decorated_function


@bp.route('/cron/check-deadlines', methods=['GET', 'POST'])
@cron_auth_required
def check_deadlines_route():
    return _handle_service_result(check_deadlines())


@bp.route('/cron/expire-approvals', methods=['GET', 'POST'])
@cron_auth_required
def expire_approvals_route():
    return _handle_service_result(expire_approvals())
