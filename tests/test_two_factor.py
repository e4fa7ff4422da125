from datetime import timedelta

import pyotp
import pytest

from app import db
from app.models import OrganizationSettings, TwoFactorAuditLog, UserBackupCode, UserProfile, utcnow
from app.services.crypto import decrypt_secret, hash_backup_code


@pytest.fixture
def enrolled(client, team, auth_headers):
    """Bob with 2FA fully enabled. Returns (secret, backup_codes)."""
    headers = auth_headers(team.bob)
    setup = client.post('/api/2fa/setup', headers=headers).get_json()
    secret = setup['secret']
    response = client.post('/api/2fa/verify-setup', headers=headers,
                           json={'code': pyotp.TOTP(secret).now()})
    assert response.status_code == 200
    return secret, setup['backupCodes']


def _wrong_code(secret):
    now = pyotp.TOTP(secret).now()
    return '000000' if now != '000000' else '111111'


def test_setup_stores_encrypted_secret_and_hashed_backup_codes(client, team, auth_headers):
    response = client.post('/api/2fa/setup', headers=auth_headers(team.bob))

    assert response.status_code == 200
    body = response.get_json()
    assert body['qrCode'].startswith('data:image/png;base64,')
    assert len(body['backupCodes']) == 10
    assert all(len(code) == 9 and code[4] == '-' for code in body['backupCodes'])

    profile = db.session.get(UserProfile, team.bob.id)
    assert profile.totp_enabled is False
    assert profile.totp_secret != body['secret']
    assert decrypt_secret(profile.totp_secret) == body['secret']

    stored = {row.code_hash for row in UserBackupCode.query.filter_by(user_id=team.bob.id)}
    assert stored == {hash_backup_code(code) for code in body['backupCodes']}


def test_verify_setup_rejects_bad_code_then_enables(client, team, auth_headers):
    headers = auth_headers(team.bob)
    secret = client.post('/api/2fa/setup', headers=headers).get_json()['secret']

    malformed = client.post('/api/2fa/verify-setup', headers=headers, json={'code': '12ab'})
    assert malformed.status_code == 400

    wrong = client.post('/api/2fa/verify-setup', headers=headers, json={'code': _wrong_code(secret)})
    assert wrong.status_code == 400
    assert db.session.get(UserProfile, team.bob.id).totp_enabled is False

    # 'token' is accepted as an alias for 'code'
    ok = client.post('/api/2fa/verify-setup', headers=headers, json={'token': pyotp.TOTP(secret).now()})
    assert ok.status_code == 200
    assert db.session.get(UserProfile, team.bob.id).totp_enabled is True

    again = client.post('/api/2fa/setup', headers=headers)
    assert again.status_code == 400
    assert again.get_json()['error'] == '2FA is already enabled'


def test_login_verification_with_totp(client, team, auth_headers, enrolled):
    secret, _ = enrolled
    response = client.post('/api/2fa/verify', headers=auth_headers(team.bob),
                           json={'code': pyotp.TOTP(secret).now()})

    assert response.status_code == 200
    body = response.get_json()
    assert body['verified'] is True
    assert body['isBackupCode'] is False
    assert body['remainingBackupCodes'] == 10
    assert db.session.get(UserProfile, team.bob.id).last_2fa_success is not None


def test_login_verification_falls_back_to_body_user_id(client, team, enrolled):
    secret, _ = enrolled
    response = client.post('/api/2fa/verify', json={'userId': team.bob.id, 'code': pyotp.TOTP(secret).now()})
    assert response.status_code == 200

    anonymous = client.post('/api/2fa/verify', json={'code': '123456'})
    assert anonymous.status_code == 401


def test_backup_code_is_single_use(client, team, auth_headers, enrolled):
    _, backup_codes = enrolled
    headers = auth_headers(team.bob)
    # Lowercase without the dash still matches
    code = backup_codes[0].replace('-', '').lower()

    first = client.post('/api/2fa/verify', headers=headers, json={'code': code})
    assert first.get_json()['isBackupCode'] is True
    assert first.get_json()['remainingBackupCodes'] == 9

    reused = client.post('/api/2fa/verify', headers=headers, json={'code': backup_codes[0]})
    assert reused.status_code == 400
    assert reused.get_json()['remainingAttempts'] == 4


def test_last_backup_code_returns_warning(client, team, auth_headers, enrolled):
    _, backup_codes = enrolled
    UserBackupCode.query.filter(
        UserBackupCode.user_id == team.bob.id,
        UserBackupCode.code_hash != hash_backup_code(backup_codes[-1]),
    ).update({'used': True}, synchronize_session=False)
    db.session.commit()

    body = client.post('/api/2fa/verify', headers=auth_headers(team.bob),
                       json={'code': backup_codes[-1]}).get_json()
    assert body['remainingBackupCodes'] == 0
    assert 'warning' in body


def test_repeated_failures_lock_the_account(client, team, auth_headers, enrolled):
    secret, _ = enrolled
    headers = auth_headers(team.bob)

    for expected_remaining in (4, 3, 2, 1, 0):
        response = client.post('/api/2fa/verify', headers=headers, json={'code': _wrong_code(secret)})
        assert response.status_code == 400
        assert response.get_json()['remainingAttempts'] == expected_remaining

    # Even the right code is refused while locked out
    locked = client.post('/api/2fa/verify', headers=headers, json={'code': pyotp.TOTP(secret).now()})
    assert locked.status_code == 429
    assert 0 < locked.get_json()['waitTime'] <= 15 * 60

    fails = TwoFactorAuditLog.query.filter_by(user_id=team.bob.id, event_type='verify_fail').count()
    assert fails == 5


def test_failure_counter_restarts_after_lockout_expires(client, team, auth_headers, enrolled):
    secret, _ = enrolled
    profile = db.session.get(UserProfile, team.bob.id)
    profile.failed_2fa_attempts = 5
    profile.last_failed_2fa_attempt = utcnow() - timedelta(minutes=16)
    db.session.commit()

    response = client.post('/api/2fa/verify', headers=auth_headers(team.bob),
                           json={'code': _wrong_code(secret)})

    assert response.status_code == 400
    assert response.get_json()['remainingAttempts'] == 4


def test_failure_counter_counts_concurrent_failures(client, team, auth_headers, enrolled):
    secret, _ = enrolled
    profile = db.session.get(UserProfile, team.bob.id)
    assert profile.failed_2fa_attempts == 0

    # Two other bad codes land in the database after this profile was loaded
    UserProfile.query.filter_by(id=team.bob.id).update(
        {'failed_2fa_attempts': 2, 'last_failed_2fa_attempt': utcnow()}, synchronize_session=False)

    response = client.post('/api/2fa/verify', headers=auth_headers(team.bob),
                           json={'code': _wrong_code(secret)})

    assert response.status_code == 400
    assert response.get_json()['remainingAttempts'] == 2
    db.session.expire_all()
    assert db.session.get(UserProfile, team.bob.id).failed_2fa_attempts == 3


def test_disable_requires_valid_code(client, team, auth_headers, enrolled):
    secret, _ = enrolled
    headers = auth_headers(team.bob)

    wrong = client.post('/api/2fa/disable', headers=headers, json={'code': _wrong_code(secret)})
    assert wrong.status_code == 400

    ok = client.post('/api/2fa/disable', headers=headers, json={'code': pyotp.TOTP(secret).now()})
    assert ok.status_code == 200
    profile = db.session.get(UserProfile, team.bob.id)
    assert profile.totp_enabled is False
    assert profile.totp_secret is None
    assert UserBackupCode.query.filter_by(user_id=team.bob.id).count() == 0


def test_org_policy_blocks_disable(client, team, auth_headers, enrolled):
    secret, _ = enrolled
    settings = db.session.get(OrganizationSettings, team.org.id)
    settings.require_2fa_for_all = True
    db.session.commit()

    response = client.post('/api/2fa/disable', headers=auth_headers(team.bob),
                           json={'code': pyotp.TOTP(secret).now()})

    assert response.status_code == 403
    assert db.session.get(UserProfile, team.bob.id).totp_enabled is True


def test_regenerate_backup_codes_invalidates_old_set(client, team, auth_headers, enrolled):
    secret, old_codes = enrolled
    headers = auth_headers(team.bob)

    response = client.post('/api/2fa/regenerate-backup-codes', headers=headers,
                           json={'code': pyotp.TOTP(secret).now()})
    new_codes = response.get_json()['backupCodes']
    assert len(new_codes) == 10

    stale = client.post('/api/2fa/verify', headers=headers, json={'code': old_codes[0]})
    assert stale.status_code == 400
    fresh = client.post('/api/2fa/verify', headers=headers, json={'code': new_codes[0]})
    assert fresh.get_json()['isBackupCode'] is True


def test_status_reports_org_requirements(client, team, auth_headers, enrolled):
    settings = db.session.get(OrganizationSettings, team.org.id)
    settings.require_2fa_for_admins = True
    db.session.commit()

    bob = client.get('/api/2fa/status', headers=auth_headers(team.bob)).get_json()
    assert bob['enabled'] is True
    assert bob['backupCodesRemaining'] == 10
    assert bob['requiredByOrg'] is False

    alice = client.get('/api/2fa/status', headers=auth_headers(team.alice)).get_json()
    assert alice['enabled'] is False
    assert alice['requiredByOrg'] is True
    assert alice['organizations'][0]['role'] == 'admin'


def test_org_settings_are_admin_only(client, team, auth_headers, enrolled):
    forbidden = client.post('/api/2fa/org-settings', headers=auth_headers(team.bob),
                            json={'org_id': team.org.id, 'require_2fa_for_all': True})
    assert forbidden.status_code == 403

    invalid = client.post('/api/2fa/org-settings', headers=auth_headers(team.alice),
                          json={'org_id': team.org.id, 'require_2fa_for_all': 'yes'})
    assert invalid.status_code == 400

    updated = client.post('/api/2fa/org-settings', headers=auth_headers(team.alice),
                          json={'org_id': team.org.id, 'require_2fa_for_all': True})
    assert updated.get_json()['settings'] == {'require_2fa_for_admins': False, 'require_2fa_for_all': True}

    stats = client.get(f'/api/2fa/org-settings?org_id={team.org.id}',
                       headers=auth_headers(team.alice)).get_json()['memberStats']
    assert stats == {'total': 3, 'admins': 1, 'with2FA': 1, 'adminsWith2FA': 0}
