from app import db
from app.models import UserProfile


def test_protected_routes_require_bearer_token(client, team):
    response = client.get(f'/api/grants?org_id={team.org.id}')
    assert response.status_code == 401
    assert response.get_json()['message'] == 'Missing Authorization header'


def test_malformed_authorization_header_is_rejected(client, team):
    response = client.get(f'/api/grants?org_id={team.org.id}', headers={'Authorization': 'Token abc'})
    assert response.status_code == 401
    assert 'Bearer' in response.get_json()['message']


def test_expired_token_is_rejected(client, team, token_for):
    token = token_for(team.bob.id, team.bob.email, expires_in=-60)
    response = client.get(f'/api/grants?org_id={team.org.id}', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 401
    assert response.get_json()['message'] == 'Token has expired'


def test_token_with_wrong_audience_is_rejected(client, team, token_for):
    token = token_for(team.bob.id, team.bob.email, audience='anon')
    response = client.get(f'/api/grants?org_id={team.org.id}', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 401
    assert response.get_json()['message'] == 'Invalid token audience'


def test_token_signed_with_another_secret_is_rejected(client, team, token_for):
    token = token_for(team.bob.id, team.bob.email, secret='some-other-secret-that-is-long-enough')
    response = client.get(f'/api/grants?org_id={team.org.id}', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 401


def test_me_returns_profile_and_memberships(client, team, auth_headers):
    response = client.get('/auth/me', headers=auth_headers(team.alice))
    assert response.status_code == 200
    body = response.get_json()
    assert body['user_id'] == team.alice.id
    assert body['full_name'] == 'Alice Admin'
    assert body['is_platform_admin'] is False
    assert body['memberships'] == [
        {'org_id': team.org.id, 'org_name': 'Riverbend Food Bank', 'role': 'admin'}
    ]


def test_first_request_provisions_profile_from_token(client, app, token_for):
    token = token_for('2b1f4c1e-8a8e-4c57-9a53-4f1f6d2c9e10', 'new.user@example.org')
    response = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'})

    assert response.status_code == 200
    assert response.get_json()['full_name'] == 'new.user'
    profile = db.session.get(UserProfile, '2b1f4c1e-8a8e-4c57-9a53-4f1f6d2c9e10')
    assert profile.email == 'new.user@example.org'
    assert response.get_json()['memberships'] == []


def test_non_member_gets_403_on_org_resources(client, team, auth_headers):
    response = client.get(f'/api/grants?org_id={team.org.id}', headers=auth_headers(team.outsider))
    assert response.status_code == 403
    body = response.get_json()
    assert body['success'] is False
    assert body['error_code'] == 403


def test_health_reports_database_connected(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok', 'database': 'connected'}


def test_request_id_is_echoed_or_generated(client):
    echoed = client.get('/api/health', headers={'X-Request-ID': 'req-123'})
    assert echoed.headers['X-Request-ID'] == 'req-123'

    generated = client.get('/api/health')
    assert len(generated.headers['X-Request-ID']) == 36


def test_unknown_route_returns_json_404(client):
    response = client.get('/api/does-not-exist')
    assert response.status_code == 404
    assert response.get_json()['error'] == 'Not found'
