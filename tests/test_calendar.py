from datetime import date

from app import db
from app.models import OrganizationSettings
from app.services.calendar import escape_ics_text


def _feed_url(org):
    token = db.session.get(OrganizationSettings, org.id).ics_token
    return f'/api/calendar/{org.id}/{token}.ics'


def test_escape_ics_text():
    assert escape_ics_text('a\\b; c, d\ne') == 'a\\\\b\\; c\\, d\\ne'
    assert escape_ics_text(None) == ''


def test_feed_lists_grants_with_deadlines(client, team, make_grant):
    team.grant.close_date = date(2026, 11, 30)
    team.grant.agency = 'USDA'
    make_grant(team.org, team.bob, title='Arts; Culture, Heritage', close_date=date(2026, 11, 2))
    make_grant(team.org, team.bob, title='No deadline yet')
    db.session.commit()

    response = client.get(_feed_url(team.org))

    assert response.status_code == 200
    assert response.headers['Content-Type'] == 'text/calendar; charset=utf-8'
    assert response.headers['Cache-Control'] == 'no-cache, no-store, must-revalidate'

    body = response.get_data(as_text=True)
    assert body.startswith('BEGIN:VCALENDAR\r\nVERSION:2.0\r\n')
    assert body.endswith('END:VCALENDAR\r\n')
    assert body.count('BEGIN:VEVENT') == 2
    # Ordered by close date
    assert body.index('Arts\\; Culture\\, Heritage') < body.index('Community Health Initiative')
    assert f'UID:grant-{team.grant.id}@grantcue.com' in body
    assert 'DTSTART;VALUE=DATE:20261130\r\nDTEND;VALUE=DATE:20261201' in body
    assert 'DESCRIPTION:Agency: USDA\\nStatus: researching' in body
    assert 'No deadline yet' not in body


def test_token_without_ics_suffix_works(client, team):
    assert client.get(_feed_url(team.org)[:-len('.ics')]).status_code == 200


def test_wrong_token_is_404(client, team, make_user, make_org):
    other = make_org('Other Org', admins=[make_user('other@example.org')])
    other_token = db.session.get(OrganizationSettings, other.id).ics_token

    wrong = client.get(f'/api/calendar/{team.org.id}/{other_token}.ics')
    assert wrong.status_code == 404
    assert wrong.get_json()['error'] == 'Calendar not found'

    assert client.get('/api/calendar/no-such-org/abc.ics').status_code == 404


def test_rotating_token_invalidates_old_feed_url(client, team, auth_headers):
    old_url = _feed_url(team.org)

    response = client.post(f'/api/calendar/token?org_id={team.org.id}', headers=auth_headers(team.alice))

    assert response.status_code == 200
    body = response.get_json()
    assert body['feed_url'] == f"http://localhost:5173/api/calendar/{team.org.id}/{body['ics_token']}.ics"
    assert client.get(old_url).status_code == 404
    assert client.get(_feed_url(team.org)).status_code == 200


def test_only_admins_rotate_token(client, team, auth_headers):
    response = client.post('/api/calendar/token', headers=auth_headers(team.bob), json={'org_id': team.org.id})
    assert response.status_code == 403
