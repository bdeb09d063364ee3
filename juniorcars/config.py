import os
from urllib.parse import urlparse

basedir = os.path.abspath(os.path.dirname(__file__))

TRUE_VALUES = frozenset({'1', 'true', 'yes', 'on'})


def env_str(name, default=''):
    value = os.environ.get(name)
    return default if value is None else value.strip()


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in TRUE_VALUES


def env_int(name, default, minimum=None):
    try:
        value = int(os.environ.get(name, default))
    except (TypeError, ValueError):
        value = default
    return value if minimum is None else max(minimum, value)


def env_float(name, default):
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def env_url(name):
    return env_str(name).rstrip('/')


def app_environment():
    """``production`` or ``development``; JUNIORCARS_ENV wins over FLASK_ENV."""
    name = (env_str('JUNIORCARS_ENV') or env_str('FLASK_ENV') or 'development').lower()
    return 'production' if name in ('prod', 'production') else 'development'


IS_PRODUCTION = app_environment() == 'production'


def database_url():
    url = env_str('DATABASE_URL')
    # Heroku-style URLs use a scheme SQLAlchemy 2 no longer accepts.
    if url.startswith('postgres://'):
        url = 'postgresql://' + url[len('postgres://'):]
    return url or 'sqlite:///' + os.path.join(basedir, 'juniorcars.db')


def engine_options(url):
    if url.startswith('sqlite'):
        return {}
    options = {'pool_pre_ping': True, 'pool_recycle': 300}
    if urlparse(url).scheme.startswith('postgresql'):
        statement_timeout = env_int('DB_STATEMENT_TIMEOUT_MS', 8000, minimum=1000)
        options['connect_args'] = {
            'connect_timeout': env_int('DB_CONNECT_TIMEOUT_SECONDS', 5, minimum=1),
            'options': f'-c statement_timeout={statement_timeout}',
        }
    return options


class Config:
    ENVIRONMENT = app_environment()
    SECRET_KEY = env_str('SECRET_KEY')
    SQLALCHEMY_DATABASE_URI = database_url()
    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Uploads are stored inline as data URLs, so the request cap sits just above the media cap.
    MEDIA_MAX_UPLOAD_BYTES = env_int('MEDIA_MAX_UPLOAD_BYTES', 10 * 1024 * 1024)
    MAX_CONTENT_LENGTH = MEDIA_MAX_UPLOAD_BYTES + 1024 * 1024
    MAX_UPLOAD_IMAGE_PIXELS = env_int('MAX_UPLOAD_IMAGE_PIXELS', 40_000_000)
    ALLOWED_UPLOAD_MIME_TYPES = (
        'image/jpeg',
        'image/png',
        'image/gif',
        'image/webp',
        'image/svg+xml',
        'video/mp4',
        'video/webm',
        'application/pdf',
    )

    PREFERRED_URL_SCHEME = env_str('PREFERRED_URL_SCHEME') or ('https' if IS_PRODUCTION else 'http')
    SESSION_COOKIE_SECURE = env_bool('SESSION_COOKIE_SECURE', PREFERRED_URL_SCHEME == 'https')
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_SECURE = SESSION_COOKIE_SECURE
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = 'Lax'
    TRUST_PROXY_HEADERS = env_bool('TRUST_PROXY_HEADERS', False)
    APP_BASE_URL = env_url('APP_BASE_URL')
    ASSET_VERSION = env_str('ASSET_VERSION')
    HSTS_MAX_AGE = env_int('HSTS_MAX_AGE', 365 * 24 * 3600, minimum=0)
    HSTS_INCLUDE_SUBDOMAINS = env_bool('HSTS_INCLUDE_SUBDOMAINS', True)

    # JSON APIs authenticate with bearer tokens instead of the form CSRF token.
    CSRF_EXEMPT_PATH_PREFIXES = ('/api/cms', '/api/headless')

    CMS_BASE_URL = env_url('CMS_BASE_URL')
    HEADLESS_CMS_URL = env_url('HEADLESS_CMS_URL')
    CONTENT_SOURCE = (env_str('CONTENT_SOURCE') or 'cms').lower()
    CMS_CLIENT_TIMEOUT_SECONDS = env_int('CMS_CLIENT_TIMEOUT_SECONDS', 10, minimum=1)
    CMS_API_REQUIRE_AUTH = env_bool('CMS_API_REQUIRE_AUTH', IS_PRODUCTION)
    CMS_SESSION_TOKEN_MAX_AGE_SECONDS = env_int('CMS_SESSION_TOKEN_MAX_AGE_SECONDS', 7 * 24 * 3600, minimum=60)
    CMS_DEV_LOGIN_PASSWORD = env_str('CMS_DEV_LOGIN_PASSWORD', '' if IS_PRODUCTION else 'admin123')
    SEO_TITLE_MAX_LENGTH = 60
    SEO_DESCRIPTION_MAX_LENGTH = 160
    SEO_DEFAULT_TITLE_TEMPLATE = '{title} | JuniorCars'

    ADMIN_EMAIL = env_str('ADMIN_EMAIL', 'admin@juniorcars.com').lower()
    SEED_SAMPLE_CONTENT = env_bool('SEED_SAMPLE_CONTENT', True)

    SENTRY_DSN = env_str('SENTRY_DSN')
    SENTRY_ENVIRONMENT = env_str('SENTRY_ENVIRONMENT') or ENVIRONMENT
    SENTRY_TRACES_SAMPLE_RATE = env_float('SENTRY_TRACES_SAMPLE_RATE', 0.0)
    LOG_JSON = env_bool('LOG_JSON', True)
    LOG_LEVEL = env_str('LOG_LEVEL', 'INFO').upper()
