# app/services/cron.py
# Scheduled jobs triggered by the deployment scheduler (see vercel.json crons).

from datetime import timedelta
from flask import current_app
from app.models import Grant, utcnow
from app.services.notifications import build_grant_payload, send_notifications
from app.services.approval_requests import expire_stale_requests
from app.utils import server_error

CLOSED_STATUSES = ('awarded', 'submitted', 'rejected', 'withdrawn')


def check_deadlines():
    """
    Sends grant.deadline_passed for open grants whose close_date is in the
    past and grant.deadline_approaching for those closing within the warning window.
    """
    today = utcnow().date()
    horizon = today + timedelta(days=current_app.config['DEADLINE_WARNING_DAYS'])

    try:
        grants = (Grant.query
                  .filter(Grant.close_date.isnot(None),
                          Grant.close_date <= horizon,
                          Grant.status.notin_(CLOSED_STATUSES))
                  .order_by(Grant.close_date.asc())
                  .all())

        passed, approaching, sent, failed = 0, 0, 0, 0
        for grant in grants:
            days_until = (grant.close_date - today).days
            if days_until < 0:
                event = 'grant.deadline_passed'
                passed += 1
            else:
                event = 'grant.deadline_approaching'
                approaching += 1

            result = send_notifications(build_grant_payload(event, grant, days_until=days_until))
            sent += result['sent']
            failed += result['failed']
    except Exception as e:
        return server_error(e, "Deadline check failed")

    current_app.logger.info(
        f"Deadline check: {passed} passed, {approaching} approaching, "
        f"{sent} notifications sent, {failed} failed"
    )
    return {
        "success": True,
        "checked": len(grants),
        "passed": passed,
        "approaching": approaching,
        "notifications_sent": sent,
        "notifications_failed": failed,
    }


def expire_approvals():
    try:
        expired = expire_stale_requests()
    except Exception as e:
        return server_error(e, "Approval expiry failed")

    current_app.logger.info(f"Expired {expired} stale approval requests")
    return {"success": True, "expired": expired}
