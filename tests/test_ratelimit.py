import time
from unittest.mock import MagicMock

import redis

from app.services import ratelimit


def _fake_redis(current_count, oldest_score=None):
    client = MagicMock()
    pipe = MagicMock()
    pipe.execute.return_value = [0, current_count, 1, True]
    client.pipeline.return_value = pipe
    client.zrange.return_value = [(b'oldest', oldest_score)] if oldest_score is not None else []
    return client


def test_requests_are_allowed_without_redis(app):
    with app.test_request_context('/api/health'):
        result = ratelimit.check_rate_limit('auth')
    assert result['success'] is True
    assert result['limit'] == 10
    assert result['remaining'] == 10


def test_request_under_limit_counts_against_window(app, monkeypatch):
    fake = _fake_redis(current_count=3)
    monkeypatch.setattr(ratelimit, 'get_redis_client', lambda: fake)

    with app.test_request_context('/api/health', headers={'X-Forwarded-For': '203.0.113.7, 10.0.0.1'}):
        result = ratelimit.check_rate_limit('auth')

    assert result['success'] is True
    assert result['remaining'] == 6
    pipe = fake.pipeline.return_value
    key = pipe.zcard.call_args[0][0]
    assert key == 'ratelimit:auth:203.0.113.7'
    pipe.expire.assert_called_once_with(key, 120)


def test_request_over_limit_is_rejected_and_not_counted(app, monkeypatch):
    oldest = time.time() - 30
    fake = _fake_redis(current_count=10, oldest_score=oldest)
    monkeypatch.setattr(ratelimit, 'get_redis_client', lambda: fake)

    with app.test_request_context('/api/health'):
        result = ratelimit.check_rate_limit('auth')

    assert result['success'] is False
    assert result['remaining'] == 0
    assert result['reset'] == int(oldest + 60) + 1
    fake.zremrangebyscore.assert_called_once()


def test_redis_errors_fail_open(app, monkeypatch):
    fake = _fake_redis(current_count=0)
    fake.pipeline.return_value.execute.side_effect = redis.ConnectionError('down')
    monkeypatch.setattr(ratelimit, 'get_redis_client', lambda: fake)

    with app.test_request_context('/api/health'):
        result = ratelimit.check_rate_limit('standard')

    assert result['success'] is True
    assert result['limit'] == 60


def test_decorated_route_returns_429_with_retry_after(client, team, monkeypatch):
    fake = _fake_redis(current_count=100, oldest_score=time.time() - 10)
    monkeypatch.setattr(ratelimit, 'get_redis_client', lambda: fake)

    response = client.get(f'/api/calendar/{team.org.id}/whatever.ics')

    assert response.status_code == 429
    body = response.get_json()
    assert body['error'] == 'Too many requests'
    assert body['error_code'] == 429
    assert int(response.headers['Retry-After']) >= 1
    assert response.headers['X-RateLimit-Limit'] == '100'
    assert response.headers['X-RateLimit-Remaining'] == '0'


def test_successful_responses_carry_rate_limit_headers(client, team, auth_headers):
    response = client.get(f'/api/grants?org_id={team.org.id}', headers=auth_headers(team.bob))
    assert response.status_code == 200
    assert response.headers['X-RateLimit-Limit'] == '60'
    assert 'X-RateLimit-Reset' in response.headers
