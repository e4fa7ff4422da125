# app/api/calendar.py

from flask import Blueprint, request, jsonify, Response, g
from app.jwt_auth import require_jwt
from app.utils import _handle_service_result
from app.services.ratelimit import rate_limit
from app.services.calendar import get_calendar_feed, rotate_calendar_token

bp = Blueprint('calendar', __name__)


@bp.route('/calendar/<string:org_id>/<string:token>', methods=['GET'])
@rate_limit('public')
def calendar_feed_route(org_id, token):
    """Subscribable ICS feed. Calendar clients append '.ics', so it is optional."""
    if token.endswith('.ics'):
        token = token[:-len('.ics')]

    feed = get_calendar_feed(org_id, token)
    if feed is None:
        return jsonify({"success": False, "error": "Calendar not found", "error_code": 404}), 404

    return Response(
        feed,
        mimetype='text/calendar',
        headers={
            'Content-Type': 'text/calendar; charset=utf-8',
            'Content-Disposition': 'inline; filename="grant-deadlines.ics"',
            'Cache-Control': 'no-cache, no-store, must-revalidate',
        }
    )


@bp.route('/calendar/token', methods=['POST'])
@rate_limit('standard')
@require_jwt
def rotate_token_route():
    org_id = request.args.get('org_id') or (request.get_json(silent=True) or {}).get('org_id')
    return _handle_service_result(rotate_calendar_token(org_id, g.current_user))
