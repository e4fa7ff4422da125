# app/api/oauth.py

from flask import Blueprint, request, redirect, g
from app.jwt_auth import require_jwt
from app.utils import _handle_service_result
from app.services.ratelimit import rate_limit
from app.services.oauth import build_authorization_url, handle_callback

bp = Blueprint('oauth', __name__)


@bp.route('/oauth/<string:provider>/authorize', methods=['GET'])
@rate_limit('auth')
@require_jwt
def authorize_route(provider):
    """Returns the provider consent URL; the frontend navigates to it."""
    result = build_authorization_url(provider, request.args.get('org_id'), g.current_user)
    return _handle_service_result(result)


@bp.route('/oauth/<string:provider>/callback', methods=['GET'])
@rate_limit('auth')
def callback_route(provider):
    # Browser redirect from the provider, so there is no bearer token here
    return redirect(handle_callback(provider, request.args))
