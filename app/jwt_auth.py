"""
JWT Authentication Middleware for Supabase Integration

This module provides JWT token verification, user context management and
the organization-scoped authorization checks shared by every blueprint.
"""

import hmac
import jwt
from functools import wraps
from dataclasses import dataclass
from flask import request, jsonify, g, current_app
from app import db
from app.models import OrgMember
from app.services.jit_provisioning import ensure_user_synced, JITProvisioningError


class JWTAuthError(Exception):
    """Custom exception for JWT authentication and authorization errors"""
    def __init__(self, message, status_code=401):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


@dataclass
class UserContext:
    """
    Lightweight user context extracted from the JWT token.

    Role checks are organization-scoped (org_members.role), so the context
    only carries identity plus the platform-admin flag from user_profiles.
    """
    id: str                  # From JWT 'sub' claim (Supabase UUID)
    email: str               # From JWT 'email' claim
    full_name: str           # From JWT 'user_metadata.full_name' claim
    is_platform_admin: bool = False


def extract_token_from_header():
    """
    Extracts the JWT token from the Authorization header.

    Expected format: "Authorization: Bearer <token>"

    Raises:
        JWTAuthError: If Authorization header is missing or malformed
    """
    auth_header = request.headers.get('Authorization')

    if not auth_header:
        raise JWTAuthError("Missing Authorization header", 401)

    parts = auth_header.split()

    if len(parts) != 2 or parts[0].lower() != 'bearer':
        raise JWTAuthError("Invalid Authorization header format. Expected 'Bearer <token>'", 401)

    return parts[1]


def verify_supabase_token(token):
    """
    Verifies a Supabase JWT token and extracts user claims.

    Raises:
        JWTAuthError: If token is invalid, expired, or verification fails
    """
    jwt_secret = current_app.config.get('SUPABASE_JWT_SECRET')

    if not jwt_secret:
        raise JWTAuthError("SUPABASE_JWT_SECRET not configured", 500)

    try:
        return jwt.decode(
            token,
            jwt_secret,
            algorithms=['HS256'],
            audience='authenticated',  # Supabase default audience
            options={
                'verify_exp': True,
                'verify_aud': True,
            }
        )

    except jwt.ExpiredSignatureError:
        raise JWTAuthError("Token has expired", 401)
    except jwt.InvalidAudienceError:
        raise JWTAuthError("Invalid token audience", 401)
    except jwt.InvalidTokenError as e:
        raise JWTAuthError(f"Invalid token: {str(e)}", 401)


def create_user_context_from_token(payload):
    """
    Creates a UserContext from the JWT payload, syncing the user's profile
    row first (JIT provisioning).

    Raises:
        JWTAuthError: If required claims are missing or JIT provisioning fails
    """
    user_id = payload.get('sub')
    email = payload.get('email')

    user_metadata = payload.get('user_metadata') or {}
    full_name = user_metadata.get('full_name') or user_metadata.get('name')

    if not user_id:
        raise JWTAuthError("Token missing 'sub' claim", 401)

    if not email:
        raise JWTAuthError("Token missing 'email' claim", 401)

    if not full_name:
        full_name = email.split('@')[0]

    try:
        profile = ensure_user_synced(user_id=user_id, email=email, full_name=full_name)
    except JITProvisioningError as e:
        current_app.logger.error(
            f"Authentication failed for {email} ({user_id}): "
            f"JIT provisioning error: {e.message}"
        )
        raise JWTAuthError("User provisioning failed. Please contact support.", 401)

    return UserContext(
        id=user_id,
        email=email,
        full_name=profile.full_name or full_name,
        is_platform_admin=bool(profile.is_platform_admin)
    )


def require_jwt(f):
    """
    Decorator to protect routes with JWT authentication.

    Usage:
        @bp.route('/protected')
        @require_jwt
        def protected_route():
            user = g.current_user
            return jsonify({"message": f"Hello {user.full_name}"})

    Error Responses:
        401: Missing, invalid, or expired token
        500: Server error during authentication
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            token = extract_token_from_header()
            payload = verify_supabase_token(token)
            g.current_user = create_user_context_from_token(payload)
            g.is_authenticated = True
        except JWTAuthError as e:
            return jsonify({"message": e.message}), e.status_code

        try:
            return f(*args, **kwargs)
        except JWTAuthError as e:
            # Raised by the org-scoped checks below from inside route handlers
            return jsonify({"success": False, "error": e.message, "error_code": e.status_code}), e.status_code

    return decorated_function


def optional_user_id():
    """
    Returns the user id from a valid bearer token, or None.
    Used by the 2FA login step, where the session may not be fully established yet.
    """
    try:
        token = extract_token_from_header()
        return verify_supabase_token(token).get('sub')
    except JWTAuthError:
        return None


# --- ORGANIZATION-SCOPED AUTHORIZATION ---

def get_membership(org_id, user_id):
    """Returns the OrgMember row for (org_id, user_id), or None."""
    if not org_id or not user_id:
        return None
    return db.session.query(OrgMember).filter_by(org_id=org_id, user_id=user_id).first()


def require_org_member(org_id, user=None):
    """
    Raises:
        JWTAuthError(403): If the current user is not a member of the organization
    """
    user = user or get_current_user()
    membership = get_membership(org_id, user.id if user else None)
    if membership is None:
        raise JWTAuthError("Access denied - not a member of this organization", 403)
    return membership


def require_org_admin(org_id, user=None):
    """
    Raises:
        JWTAuthError(403): If the current user is not an admin of the organization
    """
    membership = require_org_member(org_id, user)
    if membership.role != 'admin':
        raise JWTAuthError("Admin access required", 403)
    return membership


def is_org_admin(org_id, user_id):
    membership = get_membership(org_id, user_id)
    return membership is not None and membership.role == 'admin'


def platform_admin_required(f):
    """
    Decorator to restrict a route to platform administrators
    (user_profiles.is_platform_admin). Must be used AFTER @require_jwt.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, 'current_user', None)

        if not user:
            return jsonify({"message": "Authentication required."}), 401

        if not user.is_platform_admin:
            return jsonify({
                "success": False,
                "error": "Platform admin access required",
                "message": "This endpoint is restricted to platform administrators only"
            }), 403

        return f(*args, **kwargs)

    return decorated_function


def verify_cron_auth(auth_header):
    """
    Checks the 'Bearer <CRON_SECRET>' header sent by the scheduler.
    Uses a constant-time comparison. Always False when no secret is configured.
    """
    cron_secret = current_app.config.get('CRON_SECRET')
    if not cron_secret or not auth_header:
        return False
    return hmac.compare_digest(auth_header.encode(), f"Bearer {cron_secret}".encode())


def get_current_user():
    """Returns the current authenticated UserContext, or None."""
    return getattr(g, 'current_user', None)
