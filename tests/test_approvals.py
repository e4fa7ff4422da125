from datetime import timedelta

import pytest

from app import db
from app.models import ApprovalRequest, ApprovalRequestApprover, Grant, InAppNotification, utcnow


def _workflow(client, headers, org_id, chain, **fields):
    payload = {
        'org_id': org_id,
        'name': fields.pop('name', 'Drafting sign-off'),
        'from_stage': fields.pop('from_stage', 'researching'),
        'to_stage': fields.pop('to_stage', 'drafting'),
        'approval_chain': chain,
        **fields,
    }
    return client.post('/api/approval-workflows', headers=headers, json=payload)


def _request(client, headers, grant_id, from_stage='researching', to_stage='drafting'):
    return client.post('/api/approval-requests', headers=headers, json={
        'grant_id': grant_id, 'from_stage': from_stage, 'to_stage': to_stage,
        'request_notes': 'Ready to start writing'})


def _decide(client, headers, request_id, decision, comments=None):
    return client.patch(f'/api/approval-requests/{request_id}', headers=headers,
                        json={'decision': decision, 'comments': comments})


ADMIN_LEVEL = {'level': 1, 'role': 'admin', 'required_approvers': 1}


# --- WORKFLOW CONFIGURATION ---

def test_only_admins_configure_workflows(client, team, auth_headers):
    response = _workflow(client, auth_headers(team.bob), team.org.id, [ADMIN_LEVEL])
    assert response.status_code == 403
    assert response.get_json()['error'] == 'Admin access required'


@pytest.mark.parametrize('chain, message', [
    ([], 'approval_chain must be a non-empty array'),
    ([{'level': 2, 'role': 'admin'}], 'Approval levels must be numbered consecutively starting at 1'),
    ([{'level': 1, 'role': 'owner'}], 'Level 1: role must be one of admin, contributor'),
    ([{'level': 1, 'role': 'admin', 'required_approvers': 0}], 'Level 1: required_approvers must be at least 1'),
])
def test_invalid_chains_are_rejected(client, team, auth_headers, chain, message):
    response = _workflow(client, auth_headers(team.alice), team.org.id, chain)
    assert response.status_code == 400
    assert response.get_json()['error'] == message


def test_one_active_workflow_per_transition(client, team, auth_headers):
    headers = auth_headers(team.alice)
    assert _workflow(client, headers, team.org.id, [ADMIN_LEVEL]).status_code == 201

    duplicate = _workflow(client, headers, team.org.id, [ADMIN_LEVEL], name='Second')
    assert duplicate.status_code == 409

    inactive = _workflow(client, headers, team.org.id, [ADMIN_LEVEL], name='Draft copy', is_active=False)
    assert inactive.status_code == 201

    reactivate = client.patch(f"/api/approval-workflows/{inactive.get_json()['workflow']['id']}",
                              headers=headers, json={'is_active': True})
    assert reactivate.status_code == 409


def test_reactivating_workflow_conflicts_with_active_one(client, team, auth_headers):
    headers = auth_headers(team.alice)
    active = _workflow(client, headers, team.org.id, [ADMIN_LEVEL]).get_json()['workflow']
    dormant = _workflow(client, headers, team.org.id, [ADMIN_LEVEL], name='Old rules',
                        is_active=False).get_json()['workflow']

    response = client.patch(f"/api/approval-workflows/{dormant['id']}", headers=headers,
                            json={'is_active': 'true'})
    assert response.status_code == 409
    assert response.get_json()['error'] == 'Another active workflow already exists for this stage transition'

    # Once the active one is switched off the dormant one can take over
    client.patch(f"/api/approval-workflows/{active['id']}", headers=headers, json={'is_active': False})
    response = client.patch(f"/api/approval-workflows/{dormant['id']}", headers=headers,
                            json={'is_active': True})
    assert response.status_code == 200
    assert response.get_json()['workflow']['is_active'] is True


def test_same_stage_transition_is_rejected(client, team, auth_headers):
    response = _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL],
                         from_stage='drafting', to_stage='drafting')
    assert response.status_code == 400


# --- REQUEST LIFECYCLE ---

def test_single_level_approval_moves_grant(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL])

    created = _request(client, auth_headers(team.bob), team.grant.id)
    assert created.status_code == 201
    request_body = created.get_json()['request']
    assert request_body['status'] == 'pending'
    assert [a['user_id'] for a in request_body['approvers']] == [team.alice.id]
    assert InAppNotification.query.filter_by(user_id=team.alice.id, type='approval_request').count() == 1

    decided = _decide(client, auth_headers(team.alice), request_body['id'], 'approved', 'Go for it')
    assert decided.status_code == 200
    body = decided.get_json()
    assert body['message'] == 'Request fully approved. Grant moved to drafting'
    assert body['new_stage'] == 'drafting'
    assert body['request']['approvals'][0]['comments'] == 'Go for it'

    grant = db.session.get(Grant, team.grant.id)
    assert grant.status == 'drafting'
    assert grant.stage_updated_at is not None
    assert InAppNotification.query.filter_by(user_id=team.bob.id, type='approval_approved').count() == 1


def test_multi_level_chain_advances_level_by_level(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [
        {'level': 1, 'role': 'contributor', 'required_approvers': 1},
        {'level': 2, 'role': 'admin', 'required_approvers': 1},
    ])
    request_id = _request(client, auth_headers(team.bob), team.grant.id).get_json()['request']['id']

    # Level 2 approver cannot jump the queue
    early = _decide(client, auth_headers(team.alice), request_id, 'approved')
    assert early.status_code == 403

    level_one = _decide(client, auth_headers(team.carol), request_id, 'approved')
    assert level_one.get_json()['message'] == 'Approved. Moved to level 2'
    assert level_one.get_json()['next_level'] == 2
    assert db.session.get(Grant, team.grant.id).status == 'researching'

    level_two = _decide(client, auth_headers(team.alice), request_id, 'approved')
    assert level_two.get_json()['request']['status'] == 'approved'
    assert db.session.get(Grant, team.grant.id).status == 'drafting'


def test_member_outside_the_chain_cannot_decide(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL])
    request_id = _request(client, auth_headers(team.bob), team.grant.id).get_json()['request']['id']

    response = _decide(client, auth_headers(team.carol), request_id, 'approved')

    assert response.status_code == 403
    assert response.get_json()['error'] == 'You are not an approver for the current approval level'
    approval_request = db.session.get(ApprovalRequest, request_id)
    assert approval_request.status == 'pending'
    assert approval_request.approvals == []


def test_chain_shortened_under_pending_request_is_reported(client, team, auth_headers):
    admin_headers = auth_headers(team.alice)
    workflow = _workflow(client, admin_headers, team.org.id, [
        {'level': 1, 'role': 'contributor', 'required_approvers': 1},
        {'level': 2, 'role': 'admin', 'required_approvers': 1},
    ]).get_json()['workflow']
    request_id = _request(client, auth_headers(team.bob), team.grant.id).get_json()['request']['id']
    assert _decide(client, auth_headers(team.carol), request_id, 'approved').get_json()['next_level'] == 2

    # Level 2 disappears while the request is waiting on it
    shortened = client.patch(f"/api/approval-workflows/{workflow['id']}", headers=admin_headers, json={
        'approval_chain': [{'level': 1, 'role': 'contributor', 'required_approvers': 1}]})
    assert shortened.status_code == 200

    response = _decide(client, admin_headers, request_id, 'approved')

    assert response.status_code == 500
    assert response.get_json()['error'] == 'Invalid approval chain configuration'
    approval_request = db.session.get(ApprovalRequest, request_id)
    assert approval_request.status == 'pending'
    assert approval_request.current_approval_level == 2
    assert len(approval_request.approvals) == 1
    pending_vote = ApprovalRequestApprover.query.filter_by(
        request_id=request_id, approval_level=2, user_id=team.alice.id).one()
    assert pending_vote.decision is None
    assert db.session.get(Grant, team.grant.id).status == 'researching'


def test_first_satisfied_level_completes_without_require_all_levels(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [
        {'level': 1, 'role': 'contributor', 'required_approvers': 1},
        {'level': 2, 'role': 'admin', 'required_approvers': 1},
    ], require_all_levels=False)
    request_id = _request(client, auth_headers(team.bob), team.grant.id).get_json()['request']['id']

    response = _decide(client, auth_headers(team.carol), request_id, 'approved')
    assert response.get_json()['new_stage'] == 'drafting'


def test_level_waits_for_required_number_of_approvals(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [
        {'level': 1, 'role': 'admin', 'required_approvers': 2,
         'specific_users': [team.alice.id, team.carol.id]},
    ])
    request_id = _request(client, auth_headers(team.bob), team.grant.id).get_json()['request']['id']

    first = _decide(client, auth_headers(team.carol), request_id, 'approved')
    assert first.get_json()['message'] == 'Approval recorded (1/2 required)'

    again = _decide(client, auth_headers(team.carol), request_id, 'approved')
    assert again.status_code == 400
    assert again.get_json()['error'] == 'You have already made a decision on this request'

    second = _decide(client, auth_headers(team.alice), request_id, 'approved')
    assert second.get_json()['request']['status'] == 'approved'


def test_rejection_ends_request_and_keeps_stage(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL])
    request_id = _request(client, auth_headers(team.bob), team.grant.id).get_json()['request']['id']

    response = _decide(client, auth_headers(team.alice), request_id, 'rejected', 'Budget not ready')
    assert response.get_json()['message'] == 'Approval request rejected'
    assert response.get_json()['request']['rejection_reason'] == 'Budget not ready'
    assert db.session.get(Grant, team.grant.id).status == 'researching'

    late = _decide(client, auth_headers(team.alice), request_id, 'approved')
    assert late.status_code == 400
    assert late.get_json()['error'] == 'Request is already rejected'


def test_duplicate_pending_request_conflicts(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL])
    first = _request(client, auth_headers(team.bob), team.grant.id)

    second = _request(client, auth_headers(team.carol), team.grant.id)
    assert second.status_code == 409
    assert second.get_json()['request_id'] == first.get_json()['request']['id']


def test_request_requires_matching_stage_and_workflow(client, team, auth_headers):
    no_workflow = _request(client, auth_headers(team.bob), team.grant.id)
    assert no_workflow.status_code == 404

    _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL],
              from_stage='drafting', to_stage='submitted')
    wrong_stage = _request(client, auth_headers(team.bob), team.grant.id, 'drafting', 'submitted')
    assert wrong_stage.status_code == 400
    assert wrong_stage.get_json()['error'] == 'Grant is not in drafting stage. Current stage: researching'


def test_admin_request_is_auto_approved_when_enabled(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL], auto_approve_admin=True)

    response = _request(client, auth_headers(team.alice), team.grant.id)
    assert response.status_code == 200
    assert response.get_json()['auto_approved'] is True
    assert db.session.get(Grant, team.grant.id).status == 'drafting'
    assert ApprovalRequest.query.count() == 0


def test_request_without_eligible_approvers_is_rejected(client, team, auth_headers):
    # Alice is the only admin and cannot approve her own request
    _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL])

    response = _request(client, auth_headers(team.alice), team.grant.id)
    assert response.status_code == 400
    assert response.get_json()['error'] == 'No eligible approvers for approval level 1'


def test_self_approval_when_allowed(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL], allow_self_approval=True)
    request_id = _request(client, auth_headers(team.alice), team.grant.id).get_json()['request']['id']

    response = _decide(client, auth_headers(team.alice), request_id, 'approved')
    assert response.get_json()['new_stage'] == 'drafting'


def test_expired_request_is_cancelled_on_decision(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL])
    request_id = _request(client, auth_headers(team.bob), team.grant.id).get_json()['request']['id']

    approval_request = db.session.get(ApprovalRequest, request_id)
    approval_request.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()

    response = _decide(client, auth_headers(team.alice), request_id, 'approved')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Request has expired'
    assert db.session.get(ApprovalRequest, request_id).status == 'cancelled'


def test_cancel_rules(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL])
    request_id = _request(client, auth_headers(team.bob), team.grant.id).get_json()['request']['id']

    assert client.delete(f'/api/approval-requests/{request_id}', headers=auth_headers(team.carol)).status_code == 403
    assert client.delete(f'/api/approval-requests/{request_id}', headers=auth_headers(team.bob)).status_code == 200

    again = client.delete(f'/api/approval-requests/{request_id}', headers=auth_headers(team.alice))
    assert again.status_code == 400
    assert again.get_json()['error'] == 'Cannot cancel a request that is cancelled'


def test_pending_for_user_lists_only_actionable_requests(client, team, auth_headers):
    _workflow(client, auth_headers(team.alice), team.org.id, [
        {'level': 1, 'role': 'contributor', 'required_approvers': 1},
        {'level': 2, 'role': 'admin', 'required_approvers': 1},
    ])
    _request(client, auth_headers(team.bob), team.grant.id)

    def pending_for(user):
        response = client.get(f'/api/approval-requests?org_id={team.org.id}&pending_for_user=true',
                              headers=auth_headers(user))
        return response.get_json()['requests']

    assert len(pending_for(team.carol)) == 1
    assert pending_for(team.alice) == []
    assert pending_for(team.bob) == []


def test_workflow_with_pending_requests_cannot_be_deleted(client, team, auth_headers):
    workflow_id = _workflow(client, auth_headers(team.alice), team.org.id, [ADMIN_LEVEL]).get_json()['workflow']['id']
    request_id = _request(client, auth_headers(team.bob), team.grant.id).get_json()['request']['id']

    blocked = client.delete(f'/api/approval-workflows/{workflow_id}', headers=auth_headers(team.alice))
    assert blocked.status_code == 409
    assert blocked.get_json()['suggestion'] == 'Deactivate the workflow instead'

    client.delete(f'/api/approval-requests/{request_id}', headers=auth_headers(team.bob))
    deleted = client.delete(f'/api/approval-workflows/{workflow_id}', headers=auth_headers(team.alice))
    assert deleted.status_code == 200
    assert ApprovalRequest.query.count() == 0
