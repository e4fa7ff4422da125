# app/services/activity.py
"""
Grant activity log and the feed built on it.

Services call record_activity()/log_grant_changes() inside their own
transaction; the row is committed together with the change it describes.
"""

from app import db
from app.models import Grant, GrantActivity, OrgMember, UserProfile
from app.jwt_auth import require_org_member
from app.utils import server_error

DEFAULT_FEED_LIMIT = 50
MAX_FEED_LIMIT = 100


def record_activity(grant, user_id, action, description=None, field_name=None,
                    old_value=None, new_value=None, details=None):
    """Adds an activity row to the session. The caller owns the commit."""
    db.session.add(GrantActivity(
        org_id=grant.org_id,
        grant_id=grant.id,
        user_id=user_id,
        action=action,
        field_name=field_name,
        old_value=None if old_value is None else str(old_value),
        new_value=None if new_value is None else str(new_value),
        description=description,
        details=details,
    ))


def snapshot_grant(grant):
    """The fields log_grant_changes() compares."""
    return {field: getattr(grant, field) for field in ('status', 'priority', 'assigned_to', 'notes')}


def log_grant_changes(grant, before, user_id):
    """Records status, priority, assignment and note changes since `before`."""
    if before['status'] != grant.status:
        record_activity(grant, user_id, 'status_changed',
                        f"Grant status changed from {before['status'] or 'none'} to {grant.status}",
                        'status', before['status'], grant.status)

    if before['priority'] != grant.priority:
        record_activity(grant, user_id, 'priority_changed',
                        f"Priority changed from {before['priority'] or 'none'} to {grant.priority or 'none'}",
                        'priority', before['priority'], grant.priority)

    if before['assigned_to'] != grant.assigned_to:
        record_activity(grant, user_id, 'assigned', "Grant reassigned",
                        'assigned_to', before['assigned_to'], grant.assigned_to)

    if before['notes'] != grant.notes:
        if before['notes'] is None:
            action, description = 'note_added', "Note added"
        elif grant.notes is None:
            action, description = 'note_deleted', "Note deleted"
        else:
            action, description = 'note_updated', "Note updated"
        record_activity(grant, user_id, action, description, 'notes', before['notes'], grant.notes)


def _parse_int(value, default, name):
    if value is None or value == '':
        return default, None
    try:
        return int(value), None
    except (TypeError, ValueError):
        return None, f"{name} must be an integer"


def list_activity(args, user):
    """
    Activity feed, newest first.

    Scope: a single grant (grant_id), an organization (org_id), or every
    organization the caller belongs to. user_id and action narrow it further.
    """
    limit, error = _parse_int(args.get('limit'), DEFAULT_FEED_LIMIT, 'limit')
    if error:
        return {"success": False, "error": error}, 400
    offset, error = _parse_int(args.get('offset'), 0, 'offset')
    if error:
        return {"success": False, "error": error}, 400
    limit = min(max(limit, 1), MAX_FEED_LIMIT)
    offset = max(offset, 0)

    grant_id = args.get('grant_id')
    org_id = args.get('org_id')

    query = GrantActivity.query
    if grant_id:
        grant = db.session.get(Grant, grant_id)
        if grant is None:
            return {"success": False, "error": "Grant not found"}, 404
        require_org_member(grant.org_id, user)
        query = query.filter(GrantActivity.grant_id == grant_id)

    if org_id:
        require_org_member(org_id, user)
        query = query.filter(GrantActivity.org_id == org_id)

    if not grant_id and not org_id:
        org_ids = [m.org_id for m in OrgMember.query.filter_by(user_id=user.id).all()]
        if not org_ids:
            return {"success": True, "activities": [], "total": 0, "limit": limit, "offset": offset}
        query = query.filter(GrantActivity.org_id.in_(org_ids))

    if args.get('user_id'):
        query = query.filter(GrantActivity.user_id == args['user_id'])
    if args.get('action'):
        query = query.filter(GrantActivity.action == args['action'])

    try:
        total = query.count()
        rows = (query
                .outerjoin(UserProfile, UserProfile.id == GrantActivity.user_id)
                .join(Grant, Grant.id == GrantActivity.grant_id)
                .add_columns(UserProfile.full_name, Grant.title)
                .order_by(GrantActivity.created_at.desc(), GrantActivity.id.desc())
                .offset(offset)
                .limit(limit)
                .all())
    except Exception as e:
        return server_error(e, f"Error fetching activity for {user.id}")

    activities = []
    for activity, user_name, grant_title in rows:
        data = activity.to_dict()
        data['user_name'] = user_name
        data['grant_title'] = grant_title
        activities.append(data)

    return {"success": True, "activities": activities, "total": total, "limit": limit, "offset": offset}
