# app/services/two_factor.py
"""
TOTP two-factor authentication.

Lifecycle:
    setup (secret stored encrypted, disabled)
      -> verify-setup (first valid code enables 2FA)
      -> verify (login step; TOTP or single-use backup code)
      -> disable / regenerate-backup-codes (both require a valid TOTP code)

Brute force protection: after MAX_2FA_ATTEMPTS consecutive failures the
account is locked for TWO_FACTOR_LOCKOUT_SECONDS. Every attempt is written
to two_factor_audit_log with the caller's IP and user agent.
"""

import re
from datetime import timedelta
from flask import current_app
from sqlalchemy import and_, case, func
from app import db
from app.models import (
    UserProfile,
    UserBackupCode,
    TwoFactorAuditLog,
    OrgMember,
    Organization,
    OrganizationSettings,
    utcnow,
)
from app.jwt_auth import require_org_admin
from app.utils import get_client_ip, get_user_agent, server_error
from app.services.crypto import (
    encrypt_secret,
    decrypt_secret,
    generate_totp_secret,
    verify_totp,
    provisioning_uri,
    generate_qr_data_url,
    generate_backup_codes,
    hash_backup_code,
)

TOTP_CODE_PATTERN = re.compile(r'^\d{6}$')


def log_2fa_event(user_id, event_type, details=None):
    """Adds an audit row to the session. The caller owns the commit."""
    db.session.add(TwoFactorAuditLog(
        user_id=user_id,
        event_type=event_type,
        ip_address=get_client_ip(),
        user_agent=get_user_agent(),
        details=details,
    ))


def check_rate_limit(profile):
    """
    Returns {"allowed": False, "waitTime": seconds} while locked out,
    otherwise {"allowed": True, "remainingAttempts": n}.
    """
    max_attempts = current_app.config['MAX_2FA_ATTEMPTS']
    lockout = current_app.config['TWO_FACTOR_LOCKOUT_SECONDS']
    failures = profile.failed_2fa_attempts or 0

    if failures >= max_attempts and profile.last_failed_2fa_attempt is not None:
        elapsed = (utcnow() - profile.last_failed_2fa_attempt).total_seconds()
        if elapsed < lockout:
            return {"allowed": False, "waitTime": int(lockout - elapsed) + 1}
        # Lockout served: the counter starts over
        return {"allowed": True, "remainingAttempts": max_attempts}

    return {"allowed": True, "remainingAttempts": max(0, max_attempts - failures)}


def _record_failure(profile):
    """
    Increments the failure counter in one UPDATE so concurrent bad codes
    all count. The counter restarts at 1 after a served lockout.
    """
    now = utcnow()
    lockout_ended = now - timedelta(seconds=current_app.config['TWO_FACTOR_LOCKOUT_SECONDS'])
    served = and_(UserProfile.last_failed_2fa_attempt.isnot(None),
                  UserProfile.last_failed_2fa_attempt <= lockout_ended)

    UserProfile.query.filter_by(id=profile.id).update({
        UserProfile.failed_2fa_attempts: case(
            (served, 1),
            else_=func.coalesce(UserProfile.failed_2fa_attempts, 0) + 1,
        ),
        UserProfile.last_failed_2fa_attempt: now,
    }, synchronize_session=False)
    db.session.expire(profile, ['failed_2fa_attempts', 'last_failed_2fa_attempt'])

    return max(0, current_app.config['MAX_2FA_ATTEMPTS'] - profile.failed_2fa_attempts)


def _reset_failures(profile):
    profile.failed_2fa_attempts = 0
    profile.last_failed_2fa_attempt = None


def user_requires_2fa(user_id):
    """
    True when any of the user's organizations mandates 2FA for them:
    require_2fa_for_all, or require_2fa_for_admins where the user is an admin.
    """
    rows = (db.session.query(OrgMember.role, OrganizationSettings)
            .join(OrganizationSettings, OrganizationSettings.org_id == OrgMember.org_id)
            .filter(OrgMember.user_id == user_id)
            .all())
    for role, settings in rows:
        if settings.require_2fa_for_all:
            return True
        if role == 'admin' and settings.require_2fa_for_admins:
            return True
    return False


def _replace_backup_codes(user_id):
    """Deletes existing codes and stores hashes of a fresh set. Returns the plaintext codes."""
    UserBackupCode.query.filter_by(user_id=user_id).delete(synchronize_session=False)
    codes = generate_backup_codes(current_app.config['BACKUP_CODE_COUNT'])
    for code in codes:
        db.session.add(UserBackupCode(user_id=user_id, code_hash=hash_backup_code(code)))
    return codes


def _remaining_backup_codes(user_id):
    return UserBackupCode.query.filter_by(user_id=user_id, used=False).count()


def _load_secret(profile):
    if not profile.totp_secret:
        return None
    return decrypt_secret(profile.totp_secret)


def _get_profile(user_id):
    return db.session.get(UserProfile, user_id)


# --- ENDPOINT SERVICES ---

def setup_2fa(user):
    profile = _get_profile(user.id)
    if profile is None:
        return {"success": False, "error": "User profile not found"}, 404
    if profile.totp_enabled:
        return {"success": False, "error": "2FA is already enabled"}, 400

    try:
        secret = generate_totp_secret()
        profile.totp_secret = encrypt_secret(secret)
        profile.totp_enabled = False
        profile.totp_verified_at = None
        backup_codes = _replace_backup_codes(user.id)
        log_2fa_event(user.id, 'setup')
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"2FA setup failed for {user.id}")

    current_app.logger.info(f"2FA setup started for user {user.id}")
    return {
        "success": True,
        "qrCode": generate_qr_data_url(provisioning_uri(secret, profile.email)),
        "secret": secret,
        "backupCodes": backup_codes,
        "message": "Scan the QR code with your authenticator app, then verify with a 6-digit code",
    }


def verify_setup(user, code):
    code = (code or '').strip()
    if not TOTP_CODE_PATTERN.match(code):
        return {"success": False, "error": "A 6-digit verification code is required"}, 400

    profile = _get_profile(user.id)
    if profile is None or not profile.totp_secret:
        return {"success": False, "error": "2FA setup has not been started"}, 400
    if profile.totp_enabled:
        return {"success": False, "error": "2FA is already enabled"}, 400

    try:
        if not verify_totp(_load_secret(profile), code):
            log_2fa_event(user.id, 'verify_fail', {'stage': 'setup'})
            db.session.commit()
            return {"success": False, "error": "Invalid verification code"}, 400

        profile.totp_enabled = True
        profile.totp_verified_at = utcnow()
        _reset_failures(profile)
        log_2fa_event(user.id, 'verify_success', {'stage': 'setup'})
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"2FA setup verification failed for {user.id}")

    current_app.logger.info(f"2FA enabled for user {user.id}")
    return {"success": True, "message": "Two-factor authentication enabled"}


def verify_2fa(user_id, code):
    """Login-time verification with a TOTP code or a backup code."""
    if not user_id:
        return {"success": False, "error": "Authentication required"}, 401

    code = (code or '').strip()
    if not code:
        return {"success": False, "error": "Verification code is required"}, 400

    profile = _get_profile(user_id)
    if profile is None or not profile.totp_enabled or not profile.totp_secret:
        return {"success": False, "error": "2FA is not enabled for this account"}, 400

    limit = check_rate_limit(profile)
    if not limit['allowed']:
        current_app.logger.warning(f"2FA verification locked out for user {user_id}")
        return {
            "success": False,
            "error": "Too many failed attempts. Please try again later.",
            "waitTime": limit['waitTime'],
        }, 429

    try:
        is_backup_code = False
        verified = TOTP_CODE_PATTERN.match(code) is not None and verify_totp(_load_secret(profile), code)

        if not verified:
            backup = UserBackupCode.query.filter_by(
                user_id=user_id, code_hash=hash_backup_code(code), used=False
            ).first()
            if backup is not None:
                backup.used = True
                backup.used_at = utcnow()
                backup.used_from_ip = get_client_ip()
                log_2fa_event(user_id, 'backup_code_used')
                verified = True
                is_backup_code = True

        if not verified:
            remaining = _record_failure(profile)
            log_2fa_event(user_id, 'verify_fail', {'failed_attempts': profile.failed_2fa_attempts})
            db.session.commit()
            return {
                "success": False,
                "error": "Invalid verification code",
                "remainingAttempts": remaining,
            }, 400

        _reset_failures(profile)
        profile.last_2fa_success = utcnow()
        log_2fa_event(user_id, 'verify_success', {'backup_code': is_backup_code})
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"2FA verification failed for {user_id}")

    remaining_codes = _remaining_backup_codes(user_id)
    result = {
        "success": True,
        "verified": True,
        "isBackupCode": is_backup_code,
        "remainingBackupCodes": remaining_codes,
    }
    if is_backup_code and remaining_codes == 0:
        result["warning"] = "You have used all backup codes. Please generate new ones."
    return result


def disable_2fa(user, code):
    code = (code or '').strip()
    if not code:
        return {"success": False, "error": "Verification code is required"}, 400

    profile = _get_profile(user.id)
    if profile is None or not profile.totp_enabled:
        return {"success": False, "error": "2FA is not enabled"}, 400

    if user_requires_2fa(user.id):
        return {
            "success": False,
            "error": "Your organization requires two-factor authentication",
            "message": "2FA cannot be disabled while an organization policy requires it",
        }, 403

    try:
        if not verify_totp(_load_secret(profile), code):
            log_2fa_event(user.id, 'verify_fail', {'stage': 'disable'})
            db.session.commit()
            return {"success": False, "error": "Invalid verification code"}, 400

        profile.totp_secret = None
        profile.totp_enabled = False
        profile.totp_verified_at = None
        _reset_failures(profile)
        UserBackupCode.query.filter_by(user_id=user.id).delete(synchronize_session=False)
        log_2fa_event(user.id, 'disable')
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Disabling 2FA failed for {user.id}")

    current_app.logger.info(f"2FA disabled for user {user.id}")
    return {"success": True, "message": "Two-factor authentication disabled"}


def regenerate_backup_codes(user, code):
    code = (code or '').strip()
    if not TOTP_CODE_PATTERN.match(code):
        return {"success": False, "error": "A 6-digit verification code is required"}, 400

    profile = _get_profile(user.id)
    if profile is None or not profile.totp_enabled:
        return {"success": False, "error": "2FA is not enabled"}, 400

    try:
        if not verify_totp(_load_secret(profile), code):
            log_2fa_event(user.id, 'verify_fail', {'stage': 'regenerate_backup_codes'})
            db.session.commit()
            return {"success": False, "error": "Invalid verification code"}, 400

        backup_codes = _replace_backup_codes(user.id)
        log_2fa_event(user.id, 'backup_codes_regenerated')
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Backup code regeneration failed for {user.id}")

    return {
        "success": True,
        "backupCodes": backup_codes,
        "message": "New backup codes generated. Previous codes no longer work.",
    }


def get_2fa_status(user):
    profile = _get_profile(user.id)
    if profile is None:
        return {"success": False, "error": "User profile not found"}, 404

    rows = (db.session.query(OrgMember, Organization, OrganizationSettings)
            .join(Organization, Organization.id == OrgMember.org_id)
            .outerjoin(OrganizationSettings, OrganizationSettings.org_id == OrgMember.org_id)
            .filter(OrgMember.user_id == user.id)
            .all())

    organizations = []
    for membership, org, settings in rows:
        requires = bool(settings and (
            settings.require_2fa_for_all
            or (membership.role == 'admin' and settings.require_2fa_for_admins)
        ))
        organizations.append({
            "id": org.id,
            "name": org.name,
            "role": membership.role,
            "requires2FA": requires,
        })

    return {
        "success": True,
        "enabled": profile.totp_enabled,
        "verifiedAt": profile.totp_verified_at.isoformat() if profile.totp_verified_at else None,
        "backupCodesRemaining": _remaining_backup_codes(user.id) if profile.totp_enabled else 0,
        "requiredByOrg": any(o["requires2FA"] for o in organizations),
        "organizations": organizations,
    }


def get_org_2fa_settings(org_id, user):
    if not org_id:
        return {"success": False, "error": "org_id is required"}, 400
    require_org_admin(org_id, user)

    settings = db.session.get(OrganizationSettings, org_id)
    rows = (db.session.query(OrgMember.role, UserProfile.totp_enabled)
            .join(UserProfile, UserProfile.id == OrgMember.user_id)
            .filter(OrgMember.org_id == org_id)
            .all())

    return {
        "success": True,
        "settings": {
            "require_2fa_for_admins": bool(settings and settings.require_2fa_for_admins),
            "require_2fa_for_all": bool(settings and settings.require_2fa_for_all),
        },
        "memberStats": {
            "total": len(rows),
            "admins": sum(1 for role, _ in rows if role == 'admin'),
            "with2FA": sum(1 for _, enabled in rows if enabled),
            "adminsWith2FA": sum(1 for role, enabled in rows if role == 'admin' and enabled),
        },
    }


def update_org_2fa_settings(data, user):
    org_id = data.get('org_id')
    if not org_id:
        return {"success": False, "error": "org_id is required"}, 400
    require_org_admin(org_id, user)

    updates = {
        key: data[key] for key in ('require_2fa_for_admins', 'require_2fa_for_all')
        if isinstance(data.get(key), bool)
    }
    if not updates:
        return {"success": False,
                "error": "At least one of require_2fa_for_admins or require_2fa_for_all must be a boolean"}, 400

    try:
        settings = db.session.get(OrganizationSettings, org_id)
        if settings is None:
            settings = OrganizationSettings(org_id=org_id)
            db.session.add(settings)
        for key, value in updates.items():
            setattr(settings, key, value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        return server_error(e, f"Error updating 2FA policy for org {org_id}")

    current_app.logger.info(f"2FA policy for org {org_id} updated by {user.id}: {updates}")
    return {
        "success": True,
        "settings": {
            "require_2fa_for_admins": settings.require_2fa_for_admins,
            "require_2fa_for_all": settings.require_2fa_for_all,
        },
    }
