# app/services/notifications.py
"""
Outbound notifications for grant events.

- Slack: incoming-webhook message with mrkdwn blocks and a "View Grant" button
- Microsoft Teams: adaptive card posted to an Office 365 webhook
- In-app: rows in in_app_notifications, read by the notification bell

Events: grant.saved, grant.updated, grant.task_assigned,
grant.deadline_approaching, grant.deadline_passed
"""

from datetime import date
from flask import current_app
import requests
from app import db
from app.models import Integration, InAppNotification, utcnow
from app.utils import parse_date

WEBHOOK_TIMEOUT_SECONDS = 10

# event -> (emoji, heading, fallback text prefix)
EVENT_STYLES = {
    'grant.saved': ('✅', 'New Grant Saved', 'New grant saved'),
    'grant.updated': ('📝', 'Grant Updated', 'Grant updated'),
    'grant.task_assigned': ('👤', 'Task Assigned', 'Task assigned'),
    'grant.deadline_approaching': ('⚠️', 'Deadline Approaching', 'Deadline approaching'),
    'grant.deadline_passed': ('🚨', 'Deadline Passed', 'Deadline passed'),
}


def _format_deadline(value):
    try:
        deadline = parse_date(value)
    except ValueError:
        return str(value)
    if deadline is None:
        return None
    # e.g. "Mar 5, 2026"
    return f"{deadline.strftime('%b')} {deadline.day}, {deadline.year}"


def format_slack_message(payload):
    """Builds the Slack 'text' fallback and blocks for an event payload."""
    event = payload['event']
    title = payload.get('grant_title', '')
    agency = payload.get('grant_agency')
    deadline = _format_deadline(payload.get('grant_deadline'))

    if event == 'grant.task_assigned':
        task_title = payload.get('task_title') or 'New task'
        text = f"Task assigned: {task_title}"
        body = f"👤 *Task Assigned*\n\n*{task_title}*\nGrant: {title}"
        if payload.get('assigned_to_name'):
            body += f"\nAssigned to: {payload['assigned_to_name']}"
    elif event in EVENT_STYLES:
        emoji, heading, prefix = EVENT_STYLES[event]
        text = f"{prefix}: {title}"
        body = f"{emoji} *{heading}*\n\n*{title}*"
        if agency:
            body += f"\n_{agency}_"
        if deadline and event != 'grant.updated':
            label = 'Deadline was' if event == 'grant.deadline_passed' else 'Deadline'
            body += f"\n📅 {label}: {deadline}"
    else:
        text = f"Grant event: {event}"
        body = f"*{event}*\n\n{title}"

    blocks = [
        {"type": "section", "text": {"type": "mrkdwn", "text": body}},
        {
            "type": "actions",
            "elements": [{
                "type": "button",
                "text": {"type": "plain_text", "text": "View Grant", "emoji": True},
                "url": payload['action_url'],
                "style": "primary",
            }],
        },
    ]
    return {"text": text, "blocks": blocks}


def format_teams_message(payload):
    """Builds an adaptive card message for a Teams incoming webhook."""
    event = payload['event']
    grant_title = payload.get('grant_title', '')

    if event in EVENT_STYLES:
        emoji, heading, _ = EVENT_STYLES[event]
        title = f"{emoji} {heading}"
    else:
        title = event

    if event == 'grant.task_assigned':
        text = f"{payload.get('task_title') or 'New task'} - {grant_title}"
    else:
        text = grant_title

    facts = []
    if payload.get('grant_agency'):
        facts.append({"name": "Agency", "value": payload['grant_agency']})
    deadline = _format_deadline(payload.get('grant_deadline'))
    if deadline:
        facts.append({"name": "Deadline", "value": deadline})
    if payload.get('assigned_to_name'):
        facts.append({"name": "Assigned To", "value": payload['assigned_to_name']})

    body = [
        {"type": "TextBlock", "size": "Large", "weight": "Bolder", "text": title, "wrap": True},
        {"type": "TextBlock", "text": text, "wrap": True, "size": "Medium"},
    ]
    if facts:
        body.append({"type": "FactSet", "facts": facts})

    return {
        "type": "message",
        "attachments": [{
            "contentType": "application/vnd.microsoft.card.adaptive",
            "content": {
                "type": "AdaptiveCard",
                "body": body,
                "actions": [{"type": "Action.OpenUrl", "title": "View Grant", "url": payload['action_url']}],
                "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
                "version": "1.4",
            },
        }],
    }


def grant_action_url(grant_id):
    return f"{current_app.config['APP_BASE_URL']}/grants/{grant_id}"


def build_grant_payload(event, grant, **extra):
    """Common payload for grant events."""
    close_date = grant.close_date
    payload = {
        'event': event,
        'org_id': grant.org_id,
        'grant_id': grant.id,
        'grant_title': grant.title,
        'grant_agency': grant.agency,
        'grant_deadline': close_date.isoformat() if isinstance(close_date, date) else close_date,
        'action_url': grant_action_url(grant.id),
    }
    payload.update(extra)
    return payload


def send_notifications(payload):
    """
    Posts an event to every active Slack/Teams integration of the organization.
    A failing integration is logged and does not stop the others.

    Returns:
        dict: {"sent": int, "failed": int}
    """
    integrations = Integration.query.filter(
        Integration.org_id == payload['org_id'],
        Integration.is_active.is_(True),
        Integration.integration_type.in_(['slack', 'microsoft_teams']),
        Integration.webhook_url.isnot(None),
    ).all()

    sent, failed = 0, 0
    for integration in integrations:
        if integration.integration_type == 'slack':
            message = format_slack_message(payload)
        else:
            message = format_teams_message(payload)

        try:
            response = requests.post(
                integration.webhook_url,
                json=message,
                timeout=WEBHOOK_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            sent += 1
        except requests.RequestException as e:
            failed += 1
            current_app.logger.error(
                f"Failed to send {payload['event']} to {integration.integration_type} "
                f"for org {payload['org_id']}: {str(e)}"
            )

    if integrations:
        current_app.logger.info(
            f"Notification {payload['event']} for org {payload['org_id']}: {sent} sent, {failed} failed"
        )
    return {"sent": sent, "failed": failed}


def create_in_app_notifications(user_ids, notification_type, title, message, org_id=None,
                                related_grant_id=None, related_request_id=None, action_url=None):
    """
    Adds one notification per user to the current session.
    The caller owns the commit.
    """
    notifications = []
    for user_id in dict.fromkeys(user_ids):
        notification = InAppNotification(
            user_id=user_id,
            org_id=org_id,
            type=notification_type,
            title=title,
            message=message,
            related_grant_id=related_grant_id,
            related_request_id=related_request_id,
            action_url=action_url,
        )
        db.session.add(notification)
        notifications.append(notification)
    return notifications


# --- IN-APP NOTIFICATION CENTER ---

def list_notifications(user, limit=50, unread_only=False):
    try:
        query = InAppNotification.query.filter_by(user_id=user.id)
        if unread_only:
            query = query.filter(InAppNotification.read_at.is_(None))
        notifications = query.order_by(InAppNotification.created_at.desc()).limit(limit).all()

        unread_count = InAppNotification.query.filter(
            InAppNotification.user_id == user.id,
            InAppNotification.read_at.is_(None),
        ).count()

        return {
            "success": True,
            "notifications": [n.to_dict() for n in notifications],
            "unreadCount": unread_count,
        }
    except Exception as e:
        current_app.logger.error(f"Error listing notifications for {user.id}: {str(e)}", exc_info=True)
        return {"success": False, "error": "Failed to fetch notifications"}, 500


def mark_notifications_read(user, notification_ids=None, mark_all=False):
    if not mark_all and not isinstance(notification_ids, list):
        return {"success": False, "error": "notification_ids array is required"}, 400

    try:
        query = InAppNotification.query.filter(
            InAppNotification.user_id == user.id,
            InAppNotification.read_at.is_(None),
        )
        if not mark_all:
            query = query.filter(InAppNotification.id.in_(notification_ids))

        updated = query.update({InAppNotification.read_at: utcnow()}, synchronize_session=False)
        db.session.commit()

        if mark_all:
            return {"success": True, "message": "All notifications marked as read", "updated": updated}
        return {"success": True, "updated": updated}
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error marking notifications read for {user.id}: {str(e)}", exc_info=True)
        return {"success": False, "error": "Failed to update notifications"}, 500


def delete_notifications(user, notification_ids):
    if not notification_ids:
        return {"success": False, "error": "notification_id or notification_ids required"}, 400

    try:
        deleted = InAppNotification.query.filter(
            InAppNotification.user_id == user.id,
            InAppNotification.id.in_(notification_ids),
        ).delete(synchronize_session=False)
        db.session.commit()
        return {"success": True, "deleted": deleted}
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting notifications for {user.id}: {str(e)}", exc_info=True)
        return {"success": False, "error": "Failed to delete notifications"}, 500
