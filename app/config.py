# config.py

import os
from dotenv import load_dotenv

# Get the base directory of the application
basedir = os.path.abspath(os.path.dirname(__file__))

# This line finds the .env file in your root directory and loads it.
load_dotenv(os.path.join(basedir, '..', '.env'))
# --------------------------------------

class Config:
    """
    Contains all the configuration variables for the application,
    including database settings, third-party credentials and the
    pipeline/approval/2FA constants shared by the services.
    """
    # --- Database Settings ---
    # Reads the database URL from the .env file.
    # Provides a default (e.g., for SQLite) if the variable isn't set.
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'app.db')

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- Secret Key ---
    SECRET_KEY = os.environ.get('SECRET_KEY')

    # production | development (controls error sanitization)
    APP_ENV = os.environ.get('APP_ENV') or os.environ.get('FLASK_ENV') or 'development'

    # --- Supabase Auth ---
    SUPABASE_URL = os.environ.get('SUPABASE_URL')
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get('SUPABASE_SERVICE_ROLE_KEY')
    SUPABASE_JWT_SECRET = os.environ.get('SUPABASE_JWT_SECRET')

    # --- Frontend / CORS ---
    APP_BASE_URL = (os.environ.get('APP_BASE_URL') or 'https://grantcue.com').rstrip('/')
    CORS_ORIGINS = [
        origin.strip() for origin in
        (os.environ.get('CORS_ORIGINS') or 'http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000').split(',')
        if origin.strip()
    ]

    # --- Cron ---
    # Vercel cron sends "Authorization: Bearer <CRON_SECRET>"
    CRON_SECRET = os.environ.get('CRON_SECRET')

    # --- Email Settings ---
    MAIL_SERVER = os.environ.get('MAIL_SERVER') or 'smtp.resend.com'
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 587)
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS', 'true').lower() != 'false'
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER') or 'GrantCue <notifications@grantcue.com>'

    # --- Two-Factor Authentication ---
    # Fernet key used to encrypt TOTP secrets at rest
    TOTP_ENCRYPTION_KEY = os.environ.get('TOTP_ENCRYPTION_KEY')
    TOTP_ISSUER = 'GrantCue'
    MAX_2FA_ATTEMPTS = 5
    TWO_FACTOR_LOCKOUT_SECONDS = 15 * 60
    BACKUP_CODE_COUNT = 10

    # --- Rate Limiting (Redis sliding window) ---
    REDIS_URL = os.environ.get('REDIS_URL')
    RATE_LIMIT_WINDOW_SECONDS = 60
    RATE_LIMIT_TIERS = {
        'public': 100,
        'auth': 10,
        'standard': 60,
        'admin': 30,
    }

    # --- OAuth Providers ---
    GOOGLE_CLIENT_ID = os.environ.get('GOOGLE_CLIENT_ID')
    GOOGLE_CLIENT_SECRET = os.environ.get('GOOGLE_CLIENT_SECRET')
    SLACK_CLIENT_ID = os.environ.get('SLACK_CLIENT_ID')
    SLACK_CLIENT_SECRET = os.environ.get('SLACK_CLIENT_SECRET')
    MICROSOFT_CLIENT_ID = os.environ.get('MICROSOFT_CLIENT_ID')
    MICROSOFT_CLIENT_SECRET = os.environ.get('MICROSOFT_CLIENT_SECRET')
    OAUTH_STATE_TTL_MINUTES = 10

    # --- grants.gov (public opportunity search) ---
    GRANTS_GOV_API_URL = (os.environ.get('GRANTS_GOV_API_URL') or 'https://api.grants.gov/v1/api').rstrip('/')

    # --- OpenAI (NOFO summaries) ---
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
    NOFO_SUMMARY_MODEL = 'gpt-4o-mini'

    # --- Pipeline Constants ---
    GRANT_STATUSES = ['researching', 'drafting', 'submitted', 'awarded', 'rejected', 'withdrawn']
    GRANT_PRIORITIES = ['low', 'medium', 'high', 'critical']
    TASK_STATUSES = ['pending', 'in_progress', 'completed', 'blocked']
    ORG_ROLES = ['admin', 'contributor']
    PLAN_NAMES = ['free', 'starter', 'pro', 'enterprise']
    PLAN_STATUSES = ['active', 'trialing', 'past_due', 'canceled', 'suspended']
    APPROVAL_REQUEST_TTL_DAYS = 7
    DEADLINE_WARNING_DAYS = 14
    MAX_COMMENT_LENGTH = 10000

    @staticmethod
    def validate_email_config(config):
        """Raises ValueError if SMTP credentials are missing from the app config."""
        missing = [
            key for key in ('MAIL_SERVER', 'MAIL_USERNAME', 'MAIL_PASSWORD')
            if not config.get(key)
        ]
        if missing:
            raise ValueError(f"Missing email configuration: {', '.join(missing)}")


class TestConfig(Config):
    """Configuration used by the pytest suite."""
    TESTING = True
    APP_ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SECRET_KEY = 'test-secret-key'
    SUPABASE_URL = None
    SUPABASE_SERVICE_ROLE_KEY = None
    SUPABASE_JWT_SECRET = 'test-jwt-secret-with-at-least-32-bytes!'
    # Fixed Fernet key (32 url-safe base64-encoded bytes)
    TOTP_ENCRYPTION_KEY = 'ZmDfcTF7_60GrrY167zsiPd67pEvs0aGOv2oasOM1Pg='
    REDIS_URL = None
    CRON_SECRET = 'test-cron-secret'
    APP_BASE_URL = 'http://localhost:5173'
    MAIL_USERNAME = None
    MAIL_PASSWORD = None
    OPENAI_API_KEY = None
    GOOGLE_CLIENT_ID = 'google-client-id'
    GOOGLE_CLIENT_SECRET = 'google-client-secret'
    SLACK_CLIENT_ID = 'slack-client-id'
    SLACK_CLIENT_SECRET = 'slack-client-secret'
    MICROSOFT_CLIENT_ID = None
    MICROSOFT_CLIENT_SECRET = None
