# app/api/notifications.py
# (In-app notification center for the current user.)

from flask import Blueprint, request, g
from app.jwt_auth import require_jwt
from app.utils import _handle_service_result, to_bool
from app.services.ratelimit import rate_limit
from app.services.notifications import (
    list_notifications,
    mark_notifications_read,
    delete_notifications,
)

bp = Blueprint('notifications', __name__)

MAX_NOTIFICATIONS_PAGE = 100


@bp.route('/notifications', methods=['GET'])
@rate_limit('standard')
@require_jwt
def list_notifications_route():
    try:
        limit = int(request.args.get('limit', 50))
    except ValueError:
        return _handle_service_result(({"success": False, "error": "limit must be an integer"}, 400))
    limit = max(1, min(limit, MAX_NOTIFICATIONS_PAGE))

    result = list_notifications(
        g.current_user,
        limit=limit,
        unread_only=to_bool(request.args.get('unread_only'))
    )
    return _handle_service_result(result)


@bp.route('/notifications', methods=['POST'])
@rate_limit('standard')
@require_jwt
def mark_read_route():
    """Body: {"notification_ids": [...]} or {"mark_all_read": true}"""
    data = request.get_json(silent=True) or {}
    result = mark_notifications_read(
        g.current_user,
        notification_ids=data.get('notification_ids'),
        mark_all=to_bool(data.get('mark_all_read'))
    )
    return _handle_service_result(result)


@bp.route('/notifications', methods=['DELETE'])
@rate_limit('standard')
@require_jwt
def delete_notifications_route():
    if request.args.get('notification_id'):
        ids = [request.args['notification_id']]
    else:
        ids = [i.strip() for i in (request.args.get('notification_ids') or '').split(',') if i.strip()]
    return _handle_service_result(delete_notifications(g.current_user, ids))
