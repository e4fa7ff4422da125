# app/services/integrations.py
# Per-organization connections to Slack, Microsoft Teams and Google Calendar.

from urllib.parse import urlparse
from flask import current_app
from app import db
from app.models import Integration, utcnow
from app.jwt_auth import require_org_member, require_org_admin
from app.utils import server_error

INTEGRATION_TYPES = ('slack', 'microsoft_teams', 'google_calendar')
WEBHOOK_TYPES = ('slack', 'microsoft_teams')


def validate_webhook_url(integration_type, webhook_url):
    """Returns an error message, or None when the URL is acceptable for the type."""
    if integration_type not in WEBHOOK_TYPES:
        return None
    if not webhook_url:
        return "webhook_url is required for Slack and Microsoft Teams integrations"

    parsed = urlparse(webhook_url)
    if parsed.scheme != 'https' or not parsed.hostname:
        return "Invalid webhook URL"

    if integration_type == 'slack' and not webhook_url.startswith('https://hooks.slack.com/'):
        return "Invalid Slack webhook URL"
    if integration_type == 'microsoft_teams' and not parsed.hostname.endswith('webhook.office.com'):
        return "Invalid Microsoft Teams webhook URL"
    return None


def upsert_integration(org_id, integration_type, connected_by, **fields):
    """
    Creates or updates the single integration of a type for an org and
    reactivates it. Commits.
    """
    integration = Integration.query.filter_by(org_id=org_id, integration_type=integration_type).first()
    if integration is None:
        integration = Integration(org_id=org_id, integration_type=integration_type)
        db.session.add(integration)

    for field, value in fields.items():
        setattr(integration, field, value)
    integration.connected_by = connected_by
    integration.connected_at = utcnow()
    integration.is_active = True
    db.session.commit()
    return integration


def list_integrations(org_id, user):
    if not org_id:
        return {"success": False, "error": "org_id is required"}, 400
    require_org_member(org_id, user)

    integrations = (Integration.query
                    .filter_by(org_id=org_id)
                    .order_by(Integration.connected_at.desc())
                    .all())
    return {"success": True, "integrations": [i.to_dict() for i in integrations]}


def save_integration(data, user):
    org_id = data.get('org_id')
    integration_type = data.get('integration_type')
    if not org_id or not integration_type:
        return {"success": False, "error": "org_id and integration_type are required"}, 400

    require_org_admin(org_id, user)

    if integration_type not in INTEGRATION_TYPES:
        return {"success": False,
                "error": f"integration_type must be one of: {', '.join(INTEGRATION_TYPES)}"}, 400

    webhook_url = (data.get('webhook_url') or '').strip() or None
    url_error = validate_webhook_url(integration_type, webhook_url)
    if url_error:
        return {"success": False, "error": url_error}, 400

    settings = data.get('settings') or {}
    if not isinstance(settings, dict):
        return {"success": False, "error": "settings must be an object"}, 400

    try:
        integration = upsert_integration(
            org_id, integration_type, user.id,
            webhook_url=webhook_url,
            channel_name=data.get('channel_name'),
            settings=settings,
        )
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error saving {integration_type} integration for org {org_id}")

    current_app.logger.info(f"{integration_type} integration saved for org {org_id} by {user.id}")
    return {"success": True, "integration": integration.to_dict()}


def delete_integration(org_id, integration_type, user):
    if not org_id or not integration_type:
        return {"success": False, "error": "org_id and integration_type are required"}, 400

    require_org_admin(org_id, user)

    integration = Integration.query.filter_by(org_id=org_id, integration_type=integration_type).first()
    if integration is None:
        return {"success": False, "error": "Integration not found"}, 404

    try:
        db.session.delete(integration)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error deleting {integration_type} integration for org {org_id}")

    current_app.logger.info(f"{integration_type} integration removed from org {org_id} by {user.id}")
    return {"success": True, "message": "Integration disconnected"}
