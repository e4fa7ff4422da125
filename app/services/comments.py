# app/services/comments.py
"""
Threaded comments with @mentions, on grants and on checklist tasks.

Mentions are written by the editor as @[Display Name](user-uuid).
The raw content is stored as typed; content_html is the escaped text with
mentions rendered as <span class="mention"> elements.
"""

import re
from markupsafe import escape
from flask import current_app
from app import db
from app.models import GrantComment, GrantTask, TaskComment, OrgMember, utcnow
from app.utils import server_error
from app.services.grants import get_grant_for_member
from app.services.notifications import create_in_app_notifications, grant_action_url

MENTION_PATTERN = re.compile(r'@\[([^\]]+)\]\(([a-f0-9-]+)\)')


def parse_mentions(content):
    """Returns the unique mentioned user ids, in order of first appearance."""
    return list(dict.fromkeys(match.group(2) for match in MENTION_PATTERN.finditer(content or '')))


def render_mentions(content):
    html = str(escape(content or ''))
    # Escaping leaves '@', '[', ']', '(' and ')' untouched, so mentions still match
    return MENTION_PATTERN.sub(r'<span class="mention" data-user-id="\2">@\1</span>', html)


def _validate_content(content):
    if not content or not content.strip():
        return "Comment content is required"
    max_length = current_app.config['MAX_COMMENT_LENGTH']
    if len(content) > max_length:
        return f"Comment exceeds maximum length of {max_length} characters"
    return None


def _notify_mentions(comment, grant, user, subject, previously_mentioned=()):
    """In-app notification for newly mentioned org members (never the author)."""
    candidates = [uid for uid in comment.mentioned_user_ids
                  if uid != user.id and uid not in previously_mentioned]
    if not candidates:
        return

    member_ids = {m.user_id for m in OrgMember.query.filter(
        OrgMember.org_id == grant.org_id, OrgMember.user_id.in_(candidates)).all()}
    recipients = [uid for uid in candidates if uid in member_ids]

    create_in_app_notifications(
        recipients,
        notification_type='comment_mention',
        title=f"{user.full_name} mentioned you",
        message=f"On {subject}: {comment.content[:200]}",
        org_id=grant.org_id,
        related_grant_id=grant.id,
        action_url=grant_action_url(grant.id),
    )


def _build_threads(comments):
    """Nests replies under their parents; replies to a hidden parent are hidden with it."""
    by_id = {}
    threads = []
    for comment in comments:
        data = comment.to_dict()
        data['replies'] = []
        by_id[comment.id] = data

    for comment in comments:
        data = by_id[comment.id]
        parent = by_id.get(comment.parent_comment_id)
        if parent is not None:
            parent['replies'].append(data)
        elif comment.parent_comment_id is None:
            threads.append(data)

    return {"success": True, "comments": threads, "total_count": len(comments)}


def _get_own_comment(model, comment_id, user):
    comment = db.session.get(model, comment_id)
    if comment is None or comment.is_deleted:
        return {"success": False, "error": "Comment not found"}, 404
    if comment.user_id != user.id:
        return {"success": False, "error": "You can only modify your own comments"}, 403
    return comment


def _edit(comment, content, grant, user, subject):
    try:
        previously_mentioned = set(comment.mentioned_user_ids or [])
        comment.content = content
        comment.content_html = render_mentions(content)
        comment.mentioned_user_ids = parse_mentions(content)
        comment.is_edited = True
        comment.edited_at = utcnow()
        _notify_mentions(comment, grant, user, subject, previously_mentioned)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error updating comment {comment.id}")

    return {"success": True, "comment": comment.to_dict()}


def _soft_delete(comment):
    """The row stays for audit and threading."""
    try:
        comment.is_deleted = True
        comment.deleted_at = utcnow()
        db.session.commit()
        return {"success": True, "message": "Comment deleted"}
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error deleting comment {comment.id}")


# --- GRANT COMMENTS ---

def _grant_subject(grant):
    return f"\"{grant.title}\""


def list_comments(grant_id, user):
    if not grant_id:
        return {"success": False, "error": "grant_id is required"}, 400

    grant = get_grant_for_member(grant_id, user)
    if isinstance(grant, tuple):
        return grant

    comments = (GrantComment.query
                .filter_by(grant_id=grant.id, is_deleted=False)
                .order_by(GrantComment.created_at.asc())
                .all())
    return _build_threads(comments)


def create_comment(data, user):
    grant_id = data.get('grant_id')
    content = data.get('content')
    if not grant_id:
        return {"success": False, "error": "grant_id is required"}, 400

    error = _validate_content(content)
    if error:
        return {"success": False, "error": error}, 400

    grant = get_grant_for_member(grant_id, user)
    if isinstance(grant, tuple):
        return grant

    parent_id = data.get('parent_comment_id')
    if parent_id:
        parent = db.session.get(GrantComment, parent_id)
        if parent is None or parent.grant_id != grant.id or parent.is_deleted:
            return {"success": False, "error": "Parent comment not found"}, 404

    try:
        comment = GrantComment(
            grant_id=grant.id,
            org_id=grant.org_id,
            user_id=user.id,
            parent_comment_id=parent_id,
            content=content,
            content_html=render_mentions(content),
            mentioned_user_ids=parse_mentions(content),
        )
        db.session.add(comment)
        db.session.flush()
        _notify_mentions(comment, grant, user, _grant_subject(grant))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error creating comment on grant {grant_id}")

    return {"success": True, "comment": comment.to_dict(), "_status": 201}


def update_comment(comment_id, data, user):
    content = data.get('content')
    error = _validate_content(content)
    if error:
        return {"success": False, "error": error}, 400

    comment = _get_own_comment(GrantComment, comment_id, user)
    if isinstance(comment, tuple):
        return comment

    grant = get_grant_for_member(comment.grant_id, user)
    if isinstance(grant, tuple):
        return grant

    return _edit(comment, content, grant, user, _grant_subject(grant))


def delete_comment(comment_id, user):
    comment = _get_own_comment(GrantComment, comment_id, user)
    if isinstance(comment, tuple):
        return comment
    return _soft_delete(comment)


# --- TASK COMMENTS ---

def _get_task_for_member(task_id, user):
    """
    Returns:
        (GrantTask, Grant), or an error tuple (dict, status)
    """
    task = db.session.get(GrantTask, task_id)
    if task is None:
        return {"success": False, "error": "Task not found"}, 404
    grant = get_grant_for_member(task.grant_id, user)
    if isinstance(grant, tuple):
        return grant
    return task, grant


def _task_subject(task):
    return f"task \"{task.title}\""


def list_task_comments(task_id, user):
    if not task_id:
        return {"success": False, "error": "task_id is required"}, 400

    loaded = _get_task_for_member(task_id, user)
    if isinstance(loaded[1], int):
        return loaded
    task, _ = loaded

    comments = (TaskComment.query
                .filter_by(task_id=task.id, is_deleted=False)
                .order_by(TaskComment.created_at.asc())
                .all())
    return _build_threads(comments)


def create_task_comment(data, user):
    task_id = data.get('task_id')
    content = data.get('content')
    if not task_id:
        return {"success": False, "error": "task_id is required"}, 400

    error = _validate_content(content)
    if error:
        return {"success": False, "error": error}, 400

    loaded = _get_task_for_member(task_id, user)
    if isinstance(loaded[1], int):
        return loaded
    task, grant = loaded

    parent_id = data.get('parent_comment_id')
    if parent_id:
        parent = db.session.get(TaskComment, parent_id)
        if parent is None or parent.task_id != task.id or parent.is_deleted:
            return {"success": False, "error": "Parent comment not found"}, 404

    try:
        comment = TaskComment(
            task_id=task.id,
            org_id=task.org_id,
            user_id=user.id,
            parent_comment_id=parent_id,
            content=content,
            content_html=render_mentions(content),
            mentioned_user_ids=parse_mentions(content),
        )
        db.session.add(comment)
        db.session.flush()
        _notify_mentions(comment, grant, user, _task_subject(task))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error creating comment on task {task_id}")

    current_app.logger.info(f"Task comment {comment.id} created on task {task.id} by {user.id}")
    return {"success": True, "comment": comment.to_dict(), "_status": 201}


def update_task_comment(comment_id, data, user):
    content = data.get('content')
    error = _validate_content(content)
    if error:
        return {"success": False, "error": error}, 400

    comment = _get_own_comment(TaskComment, comment_id, user)
    if isinstance(comment, tuple):
        return comment

    loaded = _get_task_for_member(comment.task_id, user)
    if isinstance(loaded[1], int):
        return loaded
    task, grant = loaded

    return _edit(comment, content, grant, user, _task_subject(task))


def delete_task_comment(comment_id, user):
    comment = _get_own_comment(TaskComment, comment_id, user)
    if isinstance(comment, tuple):
        return comment
    return _soft_delete(comment)
