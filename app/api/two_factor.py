# app/api/two_factor.py
# (Two-factor authentication routes. All use the strict 'auth' rate-limit tier.)

from flask import Blueprint, request, g
from app.jwt_auth import require_jwt, optional_user_id
from app.utils import _handle_service_result
from app.services.ratelimit import rate_limit
from app.services.two_factor import (
    setup_2fa,
    verify_setup,
    verify_2fa,
    disable_2fa,
    regenerate_backup_codes,
    get_2fa_status,
    get_org_2fa_settings,
    update_org_2fa_settings,
)

bp = Blueprint('two_factor', __name__)


def _code_from_body():
    data = request.get_json(silent=True) or {}
    return data.get('code') or data.get('token')


@bp.route('/2fa/setup', methods=['POST'])
@rate_limit('auth')
@require_jwt
def setup_route():
    return _handle_service_result(setup_2fa(g.current_user))


@bp.route('/2fa/verify-setup', methods=['POST'])
@rate_limit('auth')
@require_jwt
def verify_setup_route():
    return _handle_service_result(verify_setup(g.current_user, _code_from_body()))


@bp.route('/2fa/verify', methods=['POST'])
@rate_limit('auth')
def verify_route():
    """
    Login-time verification. Identifies the user from the bearer token,
    falling back to 'userId' in the body while the session is not yet elevated.
    """
    data = request.get_json(silent=True) or {}
    user_id = optional_user_id() or data.get('userId')
    result = verify_2fa(user_id, data.get('code') or data.get('token'))
    return _handle_service_result(result)


@bp.route('/2fa/disable', methods=['POST'])
@rate_limit('auth')
@require_jwt
def disable_route():
    return _handle_service_result(disable_2fa(g.current_user, _code_from_body()))


@bp.route('/2fa/regenerate-backup-codes', methods=['POST'])
@rate_limit('auth')
@require_jwt
def regenerate_backup_codes_route():
    return _handle_service_result(regenerate_backup_codes(g.current_user, _code_from_body()))


@bp.route('/2fa/status', methods=['GET'])
@rate_limit('standard')
@require_jwt
def status_route():
    return _handle_service_result(get_2fa_status(g.current_user))


@bp.route('/2fa/org-settings', methods=['GET'])
@rate_limit('standard')
@require_jwt
def get_org_settings_route():
    return _handle_service_result(get_org_2fa_settings(request.args.get('org_id'), g.current_user))


@bp.route('/2fa/org-settings', methods=['POST'])
@rate_limit('standard')
@require_jwt
def update_org_settings_route():
    return _handle_service_result(update_org_2fa_settings(request.get_json(silent=True) or {}, g.current_user))
