from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from app import db
from app.models import ApprovalRequest, ApprovalWorkflow, utcnow
from app.services import cron as cron_service

CRON_HEADERS = {'Authorization': 'Bearer test-cron-secret'}


@pytest.mark.parametrize('headers', [
    {},
    {'Authorization': 'Bearer wrong'},
    {'Authorization': 'test-cron-secret'},
])
def test_cron_endpoints_require_secret(client, headers):
    for path in ('/api/cron/check-deadlines', '/api/cron/expire-approvals'):
        response = client.get(path, headers=headers)
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Unauthorized'


def test_cron_is_disabled_without_configured_secret(app, client):
    app.config['CRON_SECRET'] = None
    assert client.post('/api/cron/check-deadlines', headers=CRON_HEADERS).status_code == 401


def test_deadline_check_classifies_open_grants(client, team, make_grant, monkeypatch):
    today = utcnow().date()
    team.grant.close_date = today - timedelta(days=1)
    make_grant(team.org, team.bob, title='Closing soon', close_date=today + timedelta(days=3))
    make_grant(team.org, team.bob, title='Closing today', close_date=today)
    make_grant(team.org, team.bob, title='Far away', close_date=today + timedelta(days=30))
    make_grant(team.org, team.bob, title='Already submitted', status='submitted',
               close_date=today + timedelta(days=2))
    make_grant(team.org, team.bob, title='Undated')
    db.session.commit()

    send = MagicMock(return_value={'sent': 1, 'failed': 0})
    monkeypatch.setattr(cron_service, 'send_notifications', send)

    response = client.post('/api/cron/check-deadlines', headers=CRON_HEADERS)

    assert response.status_code == 200
    assert response.get_json() == {
        'success': True,
        'checked': 3,
        'passed': 1,
        'approaching': 2,
        'notifications_sent': 3,
        'notifications_failed': 0,
    }
    events = {call.args[0]['grant_title']: call.args[0] for call in send.call_args_list}
    assert events[team.grant.title]['event'] == 'grant.deadline_passed'
    assert events[team.grant.title]['days_until'] == -1
    assert events['Closing soon']['event'] == 'grant.deadline_approaching'
    assert events['Closing soon']['days_until'] == 3
    assert events['Closing today']['days_until'] == 0


def test_expire_approvals_cancels_only_stale_pending(client, team):
    workflow = ApprovalWorkflow(org_id=team.org.id, name='Sign-off', from_stage='researching',
                                to_stage='drafting', approval_chain=[{'level': 1, 'role': 'admin'}],
                                created_by=team.alice.id)
    db.session.add(workflow)
    db.session.flush()

    def add_request(status, expires_in_days):
        approval_request = ApprovalRequest(org_id=team.org.id, grant_id=team.grant.id, workflow_id=workflow.id,
                                           from_stage='researching', to_stage='drafting',
                                           requested_by=team.bob.id, status=status,
                                           expires_at=utcnow() + timedelta(days=expires_in_days))
        db.session.add(approval_request)
        return approval_request

    stale = add_request('pending', -1)
    fresh = add_request('pending', 3)
    approved = add_request('approved', -5)
    db.session.commit()

    response = client.get('/api/cron/expire-approvals', headers=CRON_HEADERS)

    assert response.get_json() == {'success': True, 'expired': 1}
    assert db.session.get(ApprovalRequest, stale.id).status == 'cancelled'
    assert db.session.get(ApprovalRequest, stale.id).completed_at is not None
    assert db.session.get(ApprovalRequest, fresh.id).status == 'pending'
    assert db.session.get(ApprovalRequest, approved.id).status == 'approved'
