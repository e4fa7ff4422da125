import pytest

from app import db
from app.models import GrantActivity
from app.services.activity import record_activity


def _feed(client, headers, **params):
    return client.get('/api/activity', headers=headers, query_string=params)


def test_saving_and_editing_grant_is_logged(client, team, auth_headers):
    headers = auth_headers(team.bob)
    saved = client.post('/api/grants', headers=headers, json={
        'org_id': team.org.id, 'external_id': 'NEA-2026-7', 'title': 'Community Murals'}).get_json()['grant']

    client.patch(f"/api/grants/{saved['id']}", headers=headers, json={
        'status': 'drafting', 'priority': 'high', 'assigned_to': team.carol.id, 'notes': 'Call the artists'})
    client.patch(f"/api/grants/{saved['id']}", headers=headers, json={'notes': None})

    body = _feed(client, headers, grant_id=saved['id']).get_json()
    assert body['total'] == 6
    by_action = {a['action']: a for a in body['activities']}
    assert by_action['saved']['description'] == 'Saved "Community Murals" to the pipeline'
    assert by_action['status_changed']['description'] == 'Grant status changed from researching to drafting'
    assert by_action['status_changed']['old_value'] == 'researching'
    assert by_action['status_changed']['new_value'] == 'drafting'
    assert by_action['priority_changed']['field_name'] == 'priority'
    assert by_action['assigned']['new_value'] == team.carol.id
    assert by_action['note_added']['new_value'] == 'Call the artists'
    assert by_action['note_deleted']['old_value'] == 'Call the artists'
    assert body['activities'][0]['action'] == 'note_deleted'
    assert body['activities'][0]['user_name'] == 'Bob Writer'
    assert body['activities'][0]['grant_title'] == 'Community Murals'


def test_unchanged_fields_are_not_logged(client, team, auth_headers):
    client.patch(f'/api/grants/{team.grant.id}', headers=auth_headers(team.bob),
                 json={'status': team.grant.status})
    assert GrantActivity.query.count() == 0


def test_task_lifecycle_is_logged(client, team, auth_headers):
    headers = auth_headers(team.bob)
    task = client.post('/api/tasks', headers=headers, json={
        'grant_id': team.grant.id, 'title': 'Budget justification'}).get_json()['task']
    client.patch(f"/api/tasks/{task['id']}", headers=headers, json={'status': 'completed'})
    # Saving a completed task again is not a second completion
    client.patch(f"/api/tasks/{task['id']}", headers=headers, json={'status': 'completed', 'notes': 'done'})
    client.delete(f"/api/tasks/{task['id']}", headers=headers)

    body = _feed(client, headers, grant_id=team.grant.id).get_json()
    assert [a['description'] for a in reversed(body['activities'])] == [
        'Task added: Budget justification',
        'Task completed: Budget justification',
        'Task deleted: Budget justification',
    ]
    assert body['activities'][-1]['metadata'] == {'task_id': task['id']}


def test_approved_request_logs_stage_move(client, team, auth_headers):
    alice = auth_headers(team.alice)
    client.post('/api/approval-workflows', headers=alice, json={
        'org_id': team.org.id, 'name': 'Drafting sign-off', 'from_stage': 'researching',
        'to_stage': 'drafting', 'approval_chain': [{'level': 1, 'role': 'admin', 'required_approvers': 1}]})
    request_id = client.post('/api/approval-requests', headers=auth_headers(team.bob), json={
        'grant_id': team.grant.id, 'from_stage': 'researching', 'to_stage': 'drafting'}).get_json()['request']['id']
    client.patch(f'/api/approval-requests/{request_id}', headers=alice, json={'decision': 'approved'})

    moves = _feed(client, alice, action='status_changed').get_json()['activities']
    assert len(moves) == 1
    assert moves[0]['user_id'] == team.alice.id
    assert moves[0]['new_value'] == 'drafting'


def test_feed_scopes_to_callers_organizations(client, team, auth_headers, make_org, make_grant):
    elsewhere = make_org('Other Org', admins=[team.outsider])
    foreign_grant = make_grant(elsewhere, team.outsider, title='Not yours')
    record_activity(team.grant, team.bob.id, 'saved', 'mine')
    record_activity(foreign_grant, team.outsider.id, 'saved', 'theirs')
    db.session.commit()

    mine = _feed(client, auth_headers(team.carol)).get_json()
    assert [a['description'] for a in mine['activities']] == ['mine']

    by_org = _feed(client, auth_headers(team.carol), org_id=team.org.id).get_json()
    assert by_org['total'] == 1

    assert _feed(client, auth_headers(team.carol), org_id=elsewhere.id).status_code == 403
    assert _feed(client, auth_headers(team.carol), grant_id=foreign_grant.id).status_code == 403
    assert _feed(client, auth_headers(team.carol), grant_id='missing').status_code == 404


def test_feed_filters_by_user(client, team, auth_headers):
    record_activity(team.grant, team.bob.id, 'note_added', 'by bob')
    record_activity(team.grant, team.carol.id, 'note_updated', 'by carol')
    db.session.commit()

    body = _feed(client, auth_headers(team.alice), user_id=team.carol.id).get_json()
    assert [a['description'] for a in body['activities']] == ['by carol']


def test_feed_pagination(client, team, auth_headers):
    for n in range(5):
        record_activity(team.grant, team.bob.id, 'note_updated', f'edit {n}')
    db.session.commit()
    headers = auth_headers(team.bob)

    page = _feed(client, headers, limit=2, offset=1).get_json()
    assert page['total'] == 5
    assert page['limit'] == 2
    assert page['offset'] == 1
    assert len(page['activities']) == 2

    clamped = _feed(client, headers, limit=1000, offset=-3).get_json()
    assert clamped['limit'] == 100
    assert clamped['offset'] == 0


@pytest.mark.parametrize('params, message', [
    ({'limit': 'ten'}, 'limit must be an integer'),
    ({'offset': '1.5'}, 'offset must be an integer'),
])
def test_feed_rejects_bad_paging(client, team, auth_headers, params, message):
    response = _feed(client, auth_headers(team.bob), **params)
    assert response.status_code == 400
    assert response.get_json()['error'] == message


def test_user_without_organizations_gets_empty_feed(client, team, auth_headers):
    body = _feed(client, auth_headers(team.outsider)).get_json()
    assert body['activities'] == []
    assert body['total'] == 0
