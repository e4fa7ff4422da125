# app/services/calendar.py
# Public iCalendar feed of grant deadlines, authorized by a per-org secret token.

import hmac
import secrets
from datetime import timedelta
from flask import current_app
from app import db
from app.models import Grant, OrganizationSettings, utcnow
from app.jwt_auth import require_org_admin
from app.utils import server_error

DESCRIPTION_LIMIT = 500


def escape_ics_text(value):
    """Escapes TEXT values per RFC 5545 (backslash first)."""
    if value is None:
        return ''
    return (str(value)
            .replace('\\', '\\\\')
            .replace(';', '\\;')
            .replace(',', '\\,')
            .replace('\r\n', '\\n')
            .replace('\n', '\\n'))


def _grant_event(grant, stamp, base_url):
    start = grant.close_date
    end = start + timedelta(days=1)

    details = []
    if grant.agency:
        details.append(f"Agency: {grant.agency}")
    details.append(f"Status: {grant.status}")
    if grant.description:
        details.append('')
        details.append(grant.description[:DESCRIPTION_LIMIT])

    return [
        'BEGIN:VEVENT',
        f"UID:grant-{grant.id}@grantcue.com",
        f"DTSTAMP:{stamp}",
        f"DTSTART;VALUE=DATE:{start.strftime('%Y%m%d')}",
        f"DTEND;VALUE=DATE:{end.strftime('%Y%m%d')}",
        f"SUMMARY:{escape_ics_text('Grant Deadline: ' + grant.title)}",
        f"DESCRIPTION:{escape_ics_text(chr(10).join(details))}",
        f"URL:{base_url}/grants/{grant.id}",
        'STATUS:CONFIRMED',
        'TRANSP:TRANSPARENT',
        'END:VEVENT',
    ]


def build_ics_feed(grants):
    stamp = utcnow().strftime('%Y%m%dT%H%M%SZ')
    base_url = current_app.config['APP_BASE_URL']

    lines = [
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        'PRODID:-//GrantCue//Grant Deadlines//EN',
        'CALSCALE:GREGORIAN',
        'METHOD:PUBLISH',
        'X-WR-CALNAME:Grant Deadlines',
        'X-WR-TIMEZONE:UTC',
    ]
    for grant in grants:
        lines.extend(_grant_event(grant, stamp, base_url))
    lines.append('END:VCALENDAR')
    return '\r\n'.join(lines) + '\r\n'


def get_calendar_feed(org_id, token):
    """
    Returns:
        str: The ICS document, or None when the org/token pair is not valid
    """
    settings = db.session.get(OrganizationSettings, org_id)
    if settings is None or not token or not hmac.compare_digest(settings.ics_token.encode(), token.encode()):
        return None

    grants = (Grant.query
              .filter(Grant.org_id == org_id, Grant.close_date.isnot(None))
              .order_by(Grant.close_date.asc())
              .all())
    current_app.logger.info(f"Serving calendar feed for org {org_id} ({len(grants)} deadlines)")
    return build_ics_feed(grants)


def rotate_calendar_token(org_id, user):
    if not org_id:
        return {"success": False, "error": "org_id is required"}, 400
    require_org_admin(org_id, user)

    try:
        settings = db.session.get(OrganizationSettings, org_id)
        if settings is None:
            settings = OrganizationSettings(org_id=org_id)
            db.session.add(settings)
        settings.ics_token = secrets.token_urlsafe(24)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error rotating calendar token for org {org_id}")

    current_app.logger.info(f"Calendar token rotated for org {org_id} by {user.id}")
    return {
        "success": True,
        "ics_token": settings.ics_token,
        "feed_url": f"{current_app.config['APP_BASE_URL']}/api/calendar/{org_id}/{settings.ics_token}.ics",
    }
