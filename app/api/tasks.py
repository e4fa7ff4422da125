# app/api/tasks.py

from flask import Blueprint, request, g
from app.jwt_auth import require_jwt
from app.utils import _handle_service_result
from app.services.ratelimit import rate_limit
from app.services.tasks import list_tasks, create_task, update_task, delete_task

bp = Blueprint('tasks', __name__)


@bp.route('/tasks', methods=['GET'])
@rate_limit('standard')
@require_jwt
def list_tasks_route():
    result = list_tasks(request.args.get('grant_id'), g.current_user)
    return _handle_service_result(result)


@bp.route('/tasks', methods=['POST'])
@rate_limit('standard')
@require_jwt
def create_task_route():
    result = create_task(request.get_json(silent=True) or {}, g.current_user)
    return _handle_service_result(result)


@bp.route('/tasks/<string:task_id>', methods=['PATCH'])
@rate_limit('standard')
@require_jwt
def update_task_route(task_id):
    result = update_task(task_id, request.get_json(silent=True) or {}, g.current_user)
    return _handle_service_result(result)


@bp.route('/tasks/<string:task_id>', methods=['DELETE'])
@rate_limit('standard')
@require_jwt
def delete_task_route(task_id):
    result = delete_task(task_id, g.current_user)
    return _handle_service_result(result)
