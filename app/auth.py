# auth.py

from flask import Blueprint, jsonify, g
from app import db
from app.jwt_auth import require_jwt
from app.models import OrgMember, Organization

# Define the Blueprint
bp = Blueprint('auth', __name__)


@bp.route('/me', methods=['GET'])
@require_jwt
def get_current_user():
    """
    Returns the current user's profile and organization memberships.

    This endpoint is used by the frontend to verify authentication status
    and pick the active organization after Supabase login.

    Authentication:
        - Handled by Supabase on the frontend
        - Backend verifies JWT token via @require_jwt decorator

    Response:
        200: User details with memberships
        401: Invalid or missing token
    """
    user = g.current_user

    rows = (db.session.query(OrgMember, Organization)
            .join(Organization, Organization.id == OrgMember.org_id)
            .filter(OrgMember.user_id == user.id)
            .order_by(OrgMember.joined_at.asc())
            .all())

    return jsonify({
        "is_authenticated": True,
        "user_id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "is_platform_admin": user.is_platform_admin,
        "memberships": [
            {"org_id": org.id, "org_name": org.name, "role": membership.role}
            for membership, org in rows
        ]
    }), 200


# NOTE FOR DEVELOPERS:
# Registration, login and logout are handled entirely by Supabase:
# - Frontend uses the Supabase client library for signup/signin
# - Supabase returns a JWT to the frontend
# - Frontend includes the token in the Authorization header for all API requests
# - Backend verifies the token using @require_jwt decorator
