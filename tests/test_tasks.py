from unittest.mock import MagicMock

from app.services import tasks as tasks_service


def _create(client, headers, grant_id, **fields):
    return client.post('/api/tasks', headers=headers, json={'grant_id': grant_id, **fields})


def test_tasks_are_appended_in_position_order(client, team, auth_headers):
    headers = auth_headers(team.bob)
    first = _create(client, headers, team.grant.id, title='Draft budget').get_json()['task']
    second = _create(client, headers, team.grant.id, title='Collect letters').get_json()['task']

    assert first['position'] == 0
    assert second['position'] == 1
    assert first['created_by'] == team.bob.id

    listed = client.get(f'/api/tasks?grant_id={team.grant.id}', headers=headers).get_json()['tasks']
    assert [t['title'] for t in listed] == ['Draft budget', 'Collect letters']


def test_create_task_requires_title_and_grant(client, team, auth_headers):
    response = _create(client, auth_headers(team.bob), team.grant.id, title='   ')
    assert response.status_code == 400


def test_cannot_create_task_for_someone_else(client, team, auth_headers):
    response = _create(client, auth_headers(team.bob), team.grant.id,
                       title='Sneaky', created_by=team.carol.id)
    assert response.status_code == 403


def test_assignee_must_belong_to_org(client, team, auth_headers):
    response = _create(client, auth_headers(team.bob), team.grant.id,
                       title='Review', assigned_to=team.outsider.id)
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Assignee is not a member of this organization'


def test_completing_task_sets_and_clears_completed_at(client, team, auth_headers):
    headers = auth_headers(team.bob)
    task = _create(client, headers, team.grant.id, title='Submit SF-424').get_json()['task']

    done = client.patch(f"/api/tasks/{task['id']}", headers=headers, json={'status': 'completed'})
    assert done.get_json()['task']['completed_at'] is not None

    reopened = client.patch(f"/api/tasks/{task['id']}", headers=headers, json={'status': 'in_progress'})
    assert reopened.get_json()['task']['completed_at'] is None


def test_invalid_task_status_is_rejected(client, team, auth_headers):
    headers = auth_headers(team.bob)
    task = _create(client, headers, team.grant.id, title='Anything').get_json()['task']

    response = client.patch(f"/api/tasks/{task['id']}", headers=headers, json={'status': 'someday'})
    assert response.status_code == 400


def test_assigning_task_notifies_new_assignee_only(client, team, auth_headers, monkeypatch):
    send_email = MagicMock(return_value=True)
    monkeypatch.setattr(tasks_service, 'send_task_assignment_email', send_email)
    headers = auth_headers(team.bob)

    task = _create(client, headers, team.grant.id, title='Narrative', assigned_to=team.carol.id).get_json()['task']
    send_email.assert_called_once()
    assert send_email.call_args.kwargs['assignee_email'] == 'carol@example.org'
    assert send_email.call_args.kwargs['assigned_by_name'] == 'Bob Writer'

    # Same assignee again: no second notification
    client.patch(f"/api/tasks/{task['id']}", headers=headers, json={'assigned_to': team.carol.id})
    assert send_email.call_count == 1

    # Self-assignment is silent
    client.patch(f"/api/tasks/{task['id']}", headers=headers, json={'assigned_to': team.bob.id})
    assert send_email.call_count == 1


def test_delete_task(client, team, auth_headers):
    headers = auth_headers(team.bob)
    task = _create(client, headers, team.grant.id, title='Temporary').get_json()['task']

    assert client.delete(f"/api/tasks/{task['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/tasks/{task['id']}", headers=headers).status_code == 404


def test_is_required_accepts_string_booleans(client, team, auth_headers):
    headers = auth_headers(team.bob)

    optional = _create(client, headers, team.grant.id, title='Optional letter', is_required='false').get_json()['task']
    assert optional['is_required'] is False

    required = _create(client, headers, team.grant.id, title='SF-424', is_required='true').get_json()['task']
    assert required['is_required'] is True

    relaxed = client.patch(f"/api/tasks/{required['id']}", headers=headers, json={'is_required': '0'})
    assert relaxed.status_code == 200
    assert relaxed.get_json()['task']['is_required'] is False
