# app/services/oauth.py
"""
OAuth connection flows for Google Calendar, Slack and Microsoft Teams.

Every flow uses a single-use state token (oauth_state_tokens) bound to the
initiating admin and organization. The callback never trusts the query
string for identity: the org and user come from the stored state row.
"""

import secrets
from datetime import timedelta
from urllib.parse import urlencode
from flask import current_app
import requests
from app import db
from app.models import OAuthStateToken, utcnow
from app.jwt_auth import require_org_admin, is_org_admin
from app.services.integrations import upsert_integration

TOKEN_EXCHANGE_TIMEOUT_SECONDS = 15

PROVIDERS = {
    'google': {
        'authorize_url': 'https://accounts.google.com/o/oauth2/v2/auth',
        'token_url': 'https://oauth2.googleapis.com/token',
        'scope': 'https://www.googleapis.com/auth/calendar.events',
        'client_id_key': 'GOOGLE_CLIENT_ID',
        'client_secret_key': 'GOOGLE_CLIENT_SECRET',
        'integration_type': 'google_calendar',
        'settings_path': '/settings/calendar',
    },
    'slack': {
        'authorize_url': 'https://slack.com/oauth/v2/authorize',
        'token_url': 'https://slack.com/api/oauth.v2.access',
        'scope': 'incoming-webhook,chat:write',
        'client_id_key': 'SLACK_CLIENT_ID',
        'client_secret_key': 'SLACK_CLIENT_SECRET',
        'integration_type': 'slack',
        'settings_path': '/settings/integrations',
    },
    'microsoft': {
        'authorize_url': 'https://login.microsoftonline.com/common/oauth2/v2.0/authorize',
        'token_url': 'https://login.microsoftonline.com/common/oauth2/v2.0/token',
        'scope': 'https://graph.microsoft.com/ChannelMessage.Send offline_access',
        'client_id_key': 'MICROSOFT_CLIENT_ID',
        'client_secret_key': 'MICROSOFT_CLIENT_SECRET',
        'integration_type': 'microsoft_teams',
        'settings_path': '/settings/integrations',
    },
}


class OAuthError(Exception):
    """Raised when a provider rejects the code exchange. The message is safe to show."""
    pass


def callback_url(provider):
    return f"{current_app.config['APP_BASE_URL']}/api/oauth/{provider}/callback"


def settings_redirect(provider, **params):
    """Frontend settings page the callback lands on, with success/error in the query."""
    path = PROVIDERS.get(provider, {}).get('settings_path', '/settings/integrations')
    url = f"{current_app.config['APP_BASE_URL']}{path}"
    if params:
        url += '?' + urlencode(params)
    return url


# --- AUTHORIZE ---

def create_state_token(user_id, org_id, provider):
    """Stores a fresh state token. Commits."""
    ttl = current_app.config['OAUTH_STATE_TTL_MINUTES']
    state = OAuthStateToken(
        state_token=secrets.token_urlsafe(32),
        user_id=user_id,
        org_id=org_id,
        provider=provider,
        expires_at=utcnow() + timedelta(minutes=ttl),
    )
    db.session.add(state)
    db.session.commit()
    return state.state_token


def build_authorization_url(provider, org_id, user):
    if provider not in PROVIDERS:
        return {"success": False, "error": f"Unknown OAuth provider: {provider}"}, 404
    if not org_id:
        return {"success": False, "error": "org_id is required"}, 400

    require_org_admin(org_id, user)

    conf = PROVIDERS[provider]
    client_id = current_app.config.get(conf['client_id_key'])
    if not client_id:
        current_app.logger.error(f"{conf['client_id_key']} is not configured")
        return {"success": False, "error": f"{provider.capitalize()} OAuth is not configured"}, 500

    try:
        state = create_state_token(user.id, org_id, provider)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to store OAuth state for org {org_id}: {str(e)}", exc_info=True)
        return {"success": False, "error": "Failed to start OAuth flow"}, 500

    params = {
        'client_id': client_id,
        'redirect_uri': callback_url(provider),
        'state': state,
    }
    if provider == 'google':
        params.update(response_type='code', scope=conf['scope'],
                      access_type='offline', prompt='consent')
    elif provider == 'slack':
        params['scope'] = conf['scope']
    else:
        params.update(response_type='code', scope=conf['scope'], response_mode='query')

    return {"success": True, "authorization_url": f"{conf['authorize_url']}?{urlencode(params)}"}


# --- CALLBACK ---

def consume_state_token(state_token, provider):
    """
    Marks a state token used and returns it.

    Returns:
        (OAuthStateToken, None) on success, or (None, error_code)
    """
    state = db.session.get(OAuthStateToken, state_token)
    if state is None or state.provider != provider:
        return None, 'invalid_state'
    if state.used:
        return None, 'state_already_used'
    if state.expires_at < utcnow():
        return None, 'state_expired'

    state.used = True
    state.used_at = utcnow()
    db.session.commit()
    return state, None


def exchange_code(provider, code):
    """Trades an authorization code for provider tokens. Raises OAuthError."""
    conf = PROVIDERS[provider]
    data = {
        'client_id': current_app.config.get(conf['client_id_key']),
        'client_secret': current_app.config.get(conf['client_secret_key']),
        'code': code,
        'redirect_uri': callback_url(provider),
    }
    if provider != 'slack':
        data['grant_type'] = 'authorization_code'
    if provider == 'microsoft':
        data['scope'] = conf['scope']

    try:
        response = requests.post(conf['token_url'], data=data, timeout=TOKEN_EXCHANGE_TIMEOUT_SECONDS)
        payload = response.json()
    except (requests.RequestException, ValueError) as e:
        raise OAuthError('token_exchange_failed') from e

    # Slack answers 200 with ok=false on failure
    if provider == 'slack':
        if not payload.get('ok'):
            current_app.logger.warning(f"Slack OAuth exchange failed: {payload.get('error')}")
            raise OAuthError('token_exchange_failed')
    elif response.status_code != 200 or 'access_token' not in payload:
        current_app.logger.warning(
            f"{provider} OAuth exchange failed ({response.status_code}): {payload.get('error')}"
        )
        raise OAuthError('token_exchange_failed')
    return payload


def _integration_fields(provider, tokens):
    if provider == 'slack':
        webhook = tokens.get('incoming_webhook') or {}
        team = tokens.get('team') or {}
        return {
            'access_token': tokens.get('access_token'),
            'webhook_url': webhook.get('url'),
            'channel_id': webhook.get('channel_id'),
            'channel_name': webhook.get('channel'),
            'settings': {'team_id': team.get('id'), 'team_name': team.get('name')},
        }

    expires_in = tokens.get('expires_in')
    return {
        'access_token': tokens.get('access_token'),
        'refresh_token': tokens.get('refresh_token'),
        'token_expires_at': utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
        'settings': {'scope': tokens.get('scope')},
    }


def handle_callback(provider, args):
    """
    Completes an OAuth flow.

    Returns:
        str: URL of the frontend settings page to redirect to
    """
    if provider not in PROVIDERS:
        return settings_redirect(provider, error='unknown_provider')

    if args.get('error'):
        current_app.logger.info(f"{provider} OAuth denied: {args.get('error')}")
        return settings_redirect(provider, error=args.get('error'))

    code, state_token = args.get('code'), args.get('state')
    if not code or not state_token:
        return settings_redirect(provider, error='missing_parameters')

    state, state_error = consume_state_token(state_token, provider)
    if state_error:
        current_app.logger.warning(f"{provider} OAuth callback rejected: {state_error}")
        return settings_redirect(provider, error=state_error)

    if not is_org_admin(state.org_id, state.user_id):
        return settings_redirect(provider, error='admin_required')

    try:
        tokens = exchange_code(provider, code)
        upsert_integration(
            state.org_id,
            PROVIDERS[provider]['integration_type'],
            state.user_id,
            **_integration_fields(provider, tokens)
        )
    except OAuthError as e:
        return settings_redirect(provider, error=str(e))
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"{provider} OAuth callback failed for org {state.org_id}: {str(e)}",
                                 exc_info=True)
        return settings_redirect(provider, error='connection_failed')

    current_app.logger.info(f"{provider} connected for org {state.org_id} by {state.user_id}")
    return settings_redirect(provider, success=f"{provider}_connected")
