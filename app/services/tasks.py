# app/services/tasks.py
# Checklist tasks attached to a pipeline grant.

from flask import current_app
from sqlalchemy import func
from app import db
from app.models import GrantTask, TaskComment, UserProfile, utcnow
from app.jwt_auth import get_membership
from app.utils import parse_date, server_error, to_bool
from app.services.grants import get_grant_for_member
from app.services.email_service import send_task_assignment_email
from app.services.notifications import send_notifications, build_grant_payload
from app.services.activity import record_activity

UPDATABLE_FIELDS = (
    'title', 'description', 'task_type', 'status', 'assigned_to',
    'due_date', 'position', 'is_required', 'notes',
)


def _notify_assignment(task, grant, user):
    """Emails the assignee and posts grant.task_assigned to Slack/Teams."""
    assignee = db.session.get(UserProfile, task.assigned_to) if task.assigned_to else None
    if assignee is None:
        return

    send_task_assignment_email(
        assignee_email=assignee.email,
        assignee_name=assignee.full_name,
        task_title=task.title,
        grant_title=grant.title,
        grant_id=grant.id,
        assigned_by_name=user.full_name,
    )
    send_notifications(build_grant_payload(
        'grant.task_assigned', grant,
        task_id=task.id,
        task_title=task.title,
        assigned_to_id=assignee.id,
        assigned_to_name=assignee.full_name,
    ))


def _validate_task_fields(data):
    statuses = current_app.config['TASK_STATUSES']
    if 'status' in data and data['status'] not in statuses:
        return f"Invalid status. Must be one of: {', '.join(statuses)}"
    if 'title' in data and not (data['title'] or '').strip():
        return "Title cannot be empty"
    if data.get('position') is not None and not isinstance(data['position'], int):
        return "position must be an integer"
    return None


def list_tasks(grant_id, user):
    if not grant_id:
        return {"success": False, "error": "grant_id is required"}, 400

    grant = get_grant_for_member(grant_id, user)
    if isinstance(grant, tuple):
        return grant

    tasks = (GrantTask.query
             .filter_by(grant_id=grant.id)
             .order_by(GrantTask.position.asc(), GrantTask.created_at.asc())
             .all())
    return {"success": True, "tasks": [t.to_dict() for t in tasks]}


def create_task(data, user):
    grant_id = data.get('grant_id')
    if not grant_id or not (data.get('title') or '').strip():
        return {"success": False, "error": "grant_id and title are required"}, 400

    if data.get('created_by') and data['created_by'] != user.id:
        return {"success": False, "error": "Cannot create tasks on behalf of other users"}, 403

    grant = get_grant_for_member(grant_id, user)
    if isinstance(grant, tuple):
        return grant

    error = _validate_task_fields(data)
    if error:
        return {"success": False, "error": error}, 400

    if data.get('assigned_to') and get_membership(grant.org_id, data['assigned_to']) is None:
        return {"success": False, "error": "Assignee is not a member of this organization"}, 400

    try:
        position = data.get('position')
        if position is None:
            max_position = (db.session.query(func.max(GrantTask.position))
                            .filter(GrantTask.grant_id == grant.id).scalar())
            position = 0 if max_position is None else max_position + 1

        status = data.get('status') or 'pending'
        task = GrantTask(
            grant_id=grant.id,
            org_id=grant.org_id,
            title=data['title'].strip(),
            description=data.get('description'),
            task_type=data.get('task_type') or 'custom',
            status=status,
            assigned_to=data.get('assigned_to'),
            due_date=parse_date(data.get('due_date')),
            position=position,
            is_required=to_bool(data.get('is_required')),
            notes=data.get('notes'),
            created_by=user.id,
            completed_at=utcnow() if status == 'completed' else None,
        )
        db.session.add(task)
        db.session.flush()
        record_activity(grant, user.id, 'task_added', f"Task added: {task.title}",
                        details={'task_id': task.id})
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return {"success": False, "error": f"Invalid due_date: {str(e)}"}, 400
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error creating task for grant {grant_id}")

    if task.assigned_to and task.assigned_to != user.id:
        _notify_assignment(task, grant, user)

    return {"success": True, "task": task.to_dict(), "_status": 201}


def update_task(task_id, data, user):
    task = db.session.get(GrantTask, task_id)
    if task is None:
        return {"success": False, "error": "Task not found"}, 404

    grant = get_grant_for_member(task.grant_id, user)
    if isinstance(grant, tuple):
        return grant

    updates = {field: data[field] for field in UPDATABLE_FIELDS if field in data}
    if not updates:
        return {"success": False, "error": "No valid fields to update"}, 400

    error = _validate_task_fields(updates)
    if error:
        return {"success": False, "error": error}, 400

    if updates.get('assigned_to') and get_membership(grant.org_id, updates['assigned_to']) is None:
        return {"success": False, "error": "Assignee is not a member of this organization"}, 400

    previous_assignee = task.assigned_to
    previous_status = task.status

    try:
        if 'due_date' in updates:
            updates['due_date'] = parse_date(updates['due_date'])
        if 'is_required' in updates:
            updates['is_required'] = to_bool(updates['is_required'])
    except ValueError as e:
        return {"success": False, "error": f"Invalid due_date: {str(e)}"}, 400

    try:
        for field, value in updates.items():
            setattr(task, field, value)

        if task.status == 'completed' and previous_status != 'completed':
            task.completed_at = utcnow()
            record_activity(grant, user.id, 'task_completed', f"Task completed: {task.title}",
                            details={'task_id': task.id})
        elif task.status != 'completed':
            task.completed_at = None

        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error updating task {task_id}")

    if task.assigned_to and task.assigned_to != previous_assignee and task.assigned_to != user.id:
        _notify_assignment(task, grant, user)

    return {"success": True, "task": task.to_dict()}


def delete_task(task_id, user):
    task = db.session.get(GrantTask, task_id)
    if task is None:
        return {"success": False, "error": "Task not found"}, 404

    grant = get_grant_for_member(task.grant_id, user)
    if isinstance(grant, tuple):
        return grant

    try:
        (TaskComment.query
         .filter(TaskComment.task_id == task.id, TaskComment.parent_comment_id.isnot(None))
         .update({TaskComment.parent_comment_id: None}, synchronize_session=False))
        record_activity(grant, user.id, 'task_deleted', f"Task deleted: {task.title}",
                        details={'task_id': task.id})
        db.session.delete(task)
        db.session.commit()
        return {"success": True, "message": "Task deleted"}
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error deleting task {task_id}")
