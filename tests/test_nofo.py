import json
from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app import db
from app.models import Grant, GrantAISummary
from app.services import nofo

SUMMARY = {
    'key_dates': {'loi_deadline': '2026-04-01', 'application_deadline': '05/15/2026'},
    'funding': {'total': '$2,000,000', 'max_award': '$250,000'},
    'cost_sharing': {'required': False},
}


@pytest.fixture
def openai_enabled(app):
    app.config['OPENAI_API_KEY'] = 'sk-test'


def _completion(content, prompt_tokens=1200, completion_tokens=300):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens,
                              total_tokens=prompt_tokens + completion_tokens),
    )


@pytest.fixture
def fake_openai(monkeypatch):
    client = MagicMock()
    client.chat.completions.create.return_value = _completion(json.dumps(SUMMARY))
    monkeypatch.setattr(nofo, '_openai_client', lambda: client)
    return client


def _generate(client, headers, grant_id, **body):
    return client.post(f'/api/grants/{grant_id}/nofo-summary', headers=headers,
                       json={'pdf_text': 'Eligibility: nonprofits in rural counties...', **body})


def test_summary_requires_api_key(client, team, auth_headers):
    response = _generate(client, auth_headers(team.bob), team.grant.id)
    assert response.status_code == 500
    assert response.get_json()['error'] == 'AI summaries are not configured'


def test_summary_requires_text(client, team, auth_headers, openai_enabled):
    response = client.post(f'/api/grants/{team.grant.id}/nofo-summary', headers=auth_headers(team.bob),
                           json={'pdf_text': '   '})
    assert response.status_code == 400


def test_generate_summary_stores_usage_and_backfills_dates(client, team, auth_headers, openai_enabled, fake_openai):
    response = _generate(client, auth_headers(team.bob), team.grant.id)

    assert response.status_code == 200
    summary = response.get_json()['summary']
    assert summary['summary'] == SUMMARY
    assert summary['model'] == 'gpt-4o-mini'
    assert summary['token_count'] == 1500
    assert summary['cost_usd'] == pytest.approx(1200 * 0.15 / 1e6 + 300 * 0.60 / 1e6)

    grant = db.session.get(Grant, team.grant.id)
    assert grant.loi_deadline == date(2026, 4, 1)
    assert grant.close_date == date(2026, 5, 15)

    call = fake_openai.chat.completions.create.call_args.kwargs
    assert call['response_format'] == {'type': 'json_object'}
    assert team.grant.title in call['messages'][1]['content']


def test_existing_deadlines_are_not_overwritten(client, team, auth_headers, openai_enabled, fake_openai):
    team.grant.close_date = date(2026, 6, 1)
    db.session.commit()

    _generate(client, auth_headers(team.bob), team.grant.id)

    grant = db.session.get(Grant, team.grant.id)
    assert grant.close_date == date(2026, 6, 1)
    assert grant.loi_deadline == date(2026, 4, 1)


def test_long_documents_are_truncated(client, team, auth_headers, openai_enabled, fake_openai):
    _generate(client, auth_headers(team.bob), team.grant.id, pdf_text='A' * 50000)

    prompt = fake_openai.chat.completions.create.call_args.kwargs['messages'][1]['content']
    assert 'A' * nofo.MAX_NOFO_CHARS in prompt
    assert 'A' * (nofo.MAX_NOFO_CHARS + 1) not in prompt


def test_invalid_model_output_is_502(client, team, auth_headers, openai_enabled, fake_openai):
    fake_openai.chat.completions.create.return_value = _completion('not json')

    response = _generate(client, auth_headers(team.bob), team.grant.id)

    assert response.status_code == 502
    assert GrantAISummary.query.count() == 0


@pytest.mark.parametrize('content', [
    json.dumps([SUMMARY]),
    json.dumps('Deadlines are in May'),
    json.dumps({**SUMMARY, 'key_dates': ['2026-04-01', '2026-05-15']}),
    json.dumps({**SUMMARY, 'key_dates': 'May 15'}),
])
def test_model_output_of_wrong_shape_is_502(client, team, auth_headers, openai_enabled, fake_openai, content):
    fake_openai.chat.completions.create.return_value = _completion(content)

    response = _generate(client, auth_headers(team.bob), team.grant.id)

    assert response.status_code == 502
    assert response.get_json()['error'] == 'Failed to generate summary'
    assert GrantAISummary.query.count() == 0
    assert db.session.get(Grant, team.grant.id).close_date is None


def test_get_latest_summary(client, team, auth_headers, openai_enabled, fake_openai):
    headers = auth_headers(team.carol)
    assert client.get(f'/api/grants/{team.grant.id}/nofo-summary', headers=headers).status_code == 404

    _generate(client, auth_headers(team.bob), team.grant.id)

    body = client.get(f'/api/grants/{team.grant.id}/nofo-summary', headers=headers).get_json()
    assert body['summary']['summary']['funding']['max_award'] == '$250,000'


def test_outsider_cannot_summarize(client, team, auth_headers, openai_enabled, fake_openai):
    response = _generate(client, auth_headers(team.outsider), team.grant.id)
    assert response.status_code == 403
    fake_openai.chat.completions.create.assert_not_called()
