# app/services/email_service.py
# This service is responsible for all email notifications.

import smtplib
from email.message import EmailMessage
from flask import current_app
from app.config import Config

# LAZY VALIDATION: Track whether email config has been validated
_email_config_validated = False


def _send_email(app, msg):
    """
    Sends an email synchronously (blocking).

    NOTE: Vercel serverless functions freeze after the HTTP response is sent,
    killing background threads, so delivery happens inline.
    """
    smtp = smtplib.SMTP(app.config['MAIL_SERVER'], app.config['MAIL_PORT'], timeout=10)
    try:
        if app.config.get('MAIL_USE_TLS', True):
            smtp.starttls()
        smtp.login(app.config['MAIL_USERNAME'], app.config['MAIL_PASSWORD'])
        smtp.send_message(msg)
        app.logger.info(f"Email sent to {msg['To']}: {msg['Subject']}")
    finally:
        smtp.quit()


def send_email(to_addresses, subject, body_text):
    """
    Sends a plain-text email. Skips (and logs) when SMTP is not configured.

    Returns:
        bool: True if the message was handed to the SMTP server
    """
    global _email_config_validated

    app = current_app._get_current_object()

    # Lazy validation: check email config when the first email is sent
    if not _email_config_validated:
        try:
            Config.validate_email_config(app.config)
            _email_config_validated = True
        except ValueError as e:
            app.logger.warning(f"Email configuration error, skipping email: {e}")
            return False

    recipients = to_addresses if isinstance(to_addresses, list) else [to_addresses]
    recipients = [r for r in recipients if r]
    if not recipients:
        return False

    msg = EmailMessage()
    msg['Subject'] = subject
    msg['From'] = app.config['MAIL_DEFAULT_SENDER']
    msg['To'] = ', '.join(recipients)
    msg.set_content(body_text)

    try:
        _send_email(app, msg)
        return True
    except (smtplib.SMTPException, OSError) as e:
        # Notification emails never fail the originating request
        app.logger.error(f"Error sending email to {msg['To']}: {str(e)}")
        return False


# --- Specific Email Functions ---

def send_task_assignment_email(assignee_email, assignee_name, task_title, grant_title, grant_id, assigned_by_name):
    """Triggered when a task is assigned or reassigned."""
    base_url = current_app.config['APP_BASE_URL']
    subject = f"New task assigned: {task_title}"
    body = (
        f"Hi {assignee_name or 'there'},\n\n"
        f"{assigned_by_name} assigned you a task on \"{grant_title}\":\n\n"
        f"    {task_title}\n\n"
        f"View it here: {base_url}/pipeline?grant={grant_id}\n"
    )
    return send_email(assignee_email, subject, body)


def send_approval_request_email(approver_emails, requester_name, grant_title, from_stage, to_stage, request_id):
    """Triggered when approvers are assigned to a stage-change request."""
    base_url = current_app.config['APP_BASE_URL']
    subject = f"Approval needed: {grant_title}"
    body = (
        f"{requester_name} requested to move \"{grant_title}\" "
        f"from {from_stage} to {to_stage}.\n\n"
        f"Review the request: {base_url}/approvals?request={request_id}\n"
    )
    return send_email(approver_emails, subject, body)


def send_approval_decision_email(requester_email, grant_title, status, to_stage, reason=None):
    """Triggered when a request is fully approved or rejected."""
    subject = f"Approval request {status}: {grant_title}"
    if status == 'approved':
        body = f"Your request was approved. \"{grant_title}\" is now in {to_stage}."
    else:
        body = f"Your request to move \"{grant_title}\" to {to_stage} was rejected."
        if reason:
            body += f"\n\nReason:\n{reason}"
    return send_email(requester_email, subject, body)
