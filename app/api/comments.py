# app/api/comments.py
# (Grant and task discussion threads.)

from flask import Blueprint, request, g
from app.jwt_auth import require_jwt
from app.utils import _handle_service_result
from app.services.ratelimit import rate_limit
from app.services.comments import (
    list_comments,
    create_comment,
    update_comment,
    delete_comment,
    list_task_comments,
    create_task_comment,
    update_task_comment,
    delete_task_comment,
)

bp = Blueprint('comments', __name__)


@bp.route('/comments', methods=['GET'])
@rate_limit('standard')
@require_jwt
def list_comments_route():
    result = list_comments(request.args.get('grant_id'), g.current_user)
    return _handle_service_result(result)


@bp.route('/comments', methods=['POST'])
@rate_limit('standard')
@require_jwt
def create_comment_route():
    result = create_comment(request.get_json(silent=True) or {}, g.current_user)
    return _handle_service_result(result)


@bp.route('/comments/<string:comment_id>', methods=['PUT'])
@rate_limit('standard')
@require_jwt
def update_comment_route(comment_id):
    result = update_comment(comment_id, request.get_json(silent=True) or {}, g.current_user)
    return _handle_service_result(result)


@bp.route('/comments/<string:comment_id>', methods=['DELETE'])
@rate_limit('standard')
@require_jwt
def delete_comment_route(comment_id):
    result = delete_comment(comment_id, g.current_user)
    return _handle_service_result(result)


# --- TASK COMMENTS ---

@bp.route('/task-comments', methods=['GET'])
@rate_limit('standard')
@require_jwt
def list_task_comments_route():
    result = list_task_comments(request.args.get('task_id'), g.current_user)
    return _handle_service_result(result)


@bp.route('/task-comments', methods=['POST'])
@rate_limit('standard')
@require_jwt
def create_task_comment_route():
    result = create_task_comment(request.get_json(silent=True) or {}, g.current_user)
    return _handle_service_result(result)


@bp.route('/task-comments/<string:comment_id>', methods=['PUT'])
@rate_limit('standard')
@require_jwt
def update_task_comment_route(comment_id):
    result = update_task_comment(comment_id, request.get_json(silent=True) or {}, g.current_user)
    return _handle_service_result(result)


@bp.route('/task-comments/<string:comment_id>', methods=['DELETE'])
@rate_limit('standard')
@require_jwt
def delete_task_comment_route(comment_id):
    result = delete_task_comment(comment_id, g.current_user)
    return _handle_service_result(result)
