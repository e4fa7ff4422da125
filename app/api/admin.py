# app/api/admin.py
# (Platform administration routes. Restricted to user_profiles.is_platform_admin.)

from flask import Blueprint, request
from app.jwt_auth import require_jwt, platform_admin_required
from app.utils import _handle_service_result
from app.services.ratelimit import rate_limit
from app.services.admin import (
    list_organizations,
    list_users,
    update_plan,
    update_org_name,
    update_username,
)

bp = Blueprint('admin', __name__)


@bp.route('/admin/organizations', methods=['GET'])
@rate_limit('admin')
@require_jwt
@platform_admin_required
def list_organizations_route():
    """Returns every organization with member counts and plan details."""
    return _handle_service_result(list_organizations())


@bp.route('/admin/users', methods=['GET'])
@rate_limit('admin')
@require_jwt
@platform_admin_required
def list_users_route():
    return _handle_service_result(list_users())


@bp.route('/admin/update-plan', methods=['POST'])
@rate_limit('admin')
@require_jwt
@platform_admin_required
def update_plan_route():
    return _handle_service_result(update_plan(request.get_json(silent=True) or {}))


@bp.route('/admin/update-org-name', methods=['POST'])
@rate_limit('admin')
@require_jwt
@platform_admin_required
def update_org_name_route():
    return _handle_service_result(update_org_name(request.get_json(silent=True) or {}))


@bp.route('/admin/update-username', methods=['POST'])
@rate_limit('admin')
@require_jwt
@platform_admin_required
def update_username_route():
    """Updates a profile's full_name and mirrors it into Supabase user_metadata."""
    return _handle_service_result(update_username(request.get_json(silent=True) or {}))
