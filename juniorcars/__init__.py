import json
import logging
import os
import re
import secrets
import warnings
from datetime import datetime
from urllib.parse import urlsplit, urlunsplit

import click
from flask import Flask, abort, current_app, flash, g, has_request_context, redirect, render_template, request, session, url_for
from flask_login import LoginManager
from markupsafe import Markup
from sqlalchemy import text
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .errors import CmsError, NotFound, ValidationFailed
from .models import (
    USER_ROLE_CHOICES,
    ROLE_EDITOR,
    SiteSetting,
    User,
    db,
    normalize_user_role,
)
from .utils import clean_text, is_valid_email, rich_text

login_manager = LoginManager()
login_manager.login_view = 'admin.login'
login_manager.login_message_category = 'warning'

CSRF_FIELD = '_csrf_token'
CSRF_ERROR = 'Invalid or missing CSRF token.'
UNSAFE_METHODS = frozenset({'POST', 'PUT', 'PATCH', 'DELETE'})
REQUEST_ID_PATTERN = re.compile(r'^[A-Za-z0-9._:-]{8,80}$')

# Applied to every response unless a view already set them.
DEFAULT_RESPONSE_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Permissions-Policy': 'geolocation=(), microphone=(), camera=()',
    'Cross-Origin-Opener-Policy': 'same-origin',
    'Cross-Origin-Resource-Policy': 'same-origin',
}
NO_STORE_HEADERS = {
    'Cache-Control': 'no-store, no-cache, must-revalidate, max-age=0',
    'Pragma': 'no-cache',
    'Expires': '0',
}
# Google Fonts is the only third-party origin the templates load from.
CSP_DIRECTIVES = (
    ('default-src', "'self'"),
    ('base-uri', "'self'"),
    ('frame-ancestors', "'none'"),
    ('form-action', "'self'"),
    ('object-src', "'none'"),
    ('img-src', "'self' data: https:"),
    ('media-src', "'self' data: https:"),
    ('script-src', "'self' {nonce}"),
    ('style-src', "'self' {nonce} https://fonts.googleapis.com"),
    ('font-src', "'self' data: https://fonts.gstatic.com"),
    ('connect-src', "'self'"),
)
PRIVATE_PATH_PREFIXES = ('/admin', '/api')

_sentry_ready = False


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per record, tagged with the current request when there is one."""

    def format(self, record):
        entry = {
            'time': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if has_request_context():
            entry['request_id'] = g.get('request_id', '')
            entry['method'] = request.method
            entry['path'] = request.path
            entry['remote_ip'] = request.remote_addr
        if record.exc_info:
            entry['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(app):
    level = logging.getLevelName(app.config.get('LOG_LEVEL') or 'INFO')
    app.logger.setLevel(level if isinstance(level, int) else logging.INFO)
    if app.config.get('LOG_JSON', True):
        for handler in app.logger.handlers:
            handler.setFormatter(StructuredLogFormatter())


@login_manager.user_loader
def load_user(user_id):
    if not str(user_id).isdigit():
        return None
    return db.session.get(User, int(user_id))


def get_site_settings():
    try:
        return {setting.key: setting.value for setting in SiteSetting.query.all()}
    except Exception:
        db.session.rollback()
        current_app.logger.warning('Site settings unavailable; rendering without them.')
        return {}


def get_csrf_token():
    if CSRF_FIELD not in session:
        session[CSRF_FIELD] = secrets.token_urlsafe(32)
    return session[CSRF_FIELD]


def csrf_input():
    return Markup('<input type="hidden" name="{}" value="{}">').format(CSRF_FIELD, get_csrf_token())


def get_csp_nonce():
    if 'csp_nonce' not in g:
        g.csp_nonce = secrets.token_urlsafe(16)
    return g.csp_nonce


def content_security_policy(nonce, secure):
    source = f"'nonce-{nonce}'"
    parts = [f'{name} {value.format(nonce=source)}' for name, value in CSP_DIRECTIVES]
    if secure:
        parts.append('upgrade-insecure-requests')
    return '; '.join(parts)


def local_redirect_target(fallback):
    """The referring path when it points back at this host, else ``fallback``."""
    referrer = urlsplit((request.referrer or '').strip())
    if not referrer.path.startswith('/'):
        return fallback
    if referrer.scheme not in ('', 'http', 'https'):
        return fallback
    if referrer.netloc not in ('', request.host):
        return fallback
    return urlunsplit(('', '', referrer.path, referrer.query, ''))


def path_under(path, prefixes):
    return any(path == prefix or path.startswith(prefix + '/') for prefix in prefixes)


def init_sentry(app):
    global _sentry_ready
    dsn = app.config.get('SENTRY_DSN')
    if _sentry_ready or not dsn:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=dsn,
            environment=app.config.get('SENTRY_ENVIRONMENT') or None,
            traces_sample_rate=float(app.config.get('SENTRY_TRACES_SAMPLE_RATE') or 0.0),
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
        )
    except Exception:
        app.logger.exception('Sentry could not be initialised; continuing without error reporting.')
        return
    _sentry_ready = True
    app.logger.info('Sentry error reporting is on.')


def resolve_asset_version(app):
    if app.config.get('ASSET_VERSION'):
        return app.config['ASSET_VERSION']
    stylesheet = os.path.join(app.static_folder or '', 'css', 'style.css')
    try:
        return format(int(os.path.getmtime(stylesheet)), 'x')
    except OSError:
        return 'dev'


def database_is_reachable():
    try:
        db.session.execute(text('SELECT 1'))
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Database probe failed.')
        return False
    return True


def register_cli(app):
    @app.cli.command('seed-content')
    def seed_content_command():
        """Create the sample pages, car series, navigation and media that are missing."""
        from .seed import seed_sample_content

        summary = seed_sample_content()
        click.echo(
            'Seeded {pages} pages, {car_series} car series, {navigation} navigation items '
            'and {media} media files.'.format(**summary)
        )

    @app.cli.command('setup-permissions')
    def setup_permissions_command():
        """Enable public read access on the headless API."""
        from .headless import setup_public_permissions

        results = setup_public_permissions()
        click.echo(
            f"Permissions created: {len(results['created'])}, updated: {len(results['updated'])}, "
            f"failed: {len(results['failed'])}."
        )
        for action in results['failed']:
            click.echo(f'  failed: {action}', err=True)

    @app.cli.command('create-user')
    @click.argument('email')
    @click.option('--role', type=click.Choice(USER_ROLE_CHOICES), default=ROLE_EDITOR, show_default=True)
    @click.option('--first-name', default='')
    @click.option('--last-name', default='')
    @click.password_option()
    def create_user_command(email, role, first_name, last_name, password):
        """Create a CMS user who can sign in to the admin and the API."""
        from .schemas import UserCreate, validate_payload

        normalized_email = (email or '').strip().lower()
        if not is_valid_email(normalized_email):
            raise click.BadParameter('Invalid email address', param_hint='EMAIL')
        try:
            data = validate_payload(UserCreate, {
                'email': normalized_email,
                'password': password,
                'firstName': clean_text(first_name, 100) or None,
                'lastName': clean_text(last_name, 100) or None,
                'role': normalize_user_role(role),
            })
        except ValidationFailed as e:
            raise click.ClickException(e.message) from e
        if User.query.filter_by(email=data.email).first():
            raise click.ClickException(f'User {data.email} already exists.')
        user = User(email=data.email, first_name=data.first_name, last_name=data.last_name, role=data.role)
        user.set_password(data.password)
        db.session.add(user)
        db.session.commit()
        app.logger.info(f'Created CMS user {user.id} with role {user.role}.')
        click.echo(f'Created {user.role} {data.email}.')


def register_request_hooks(app):
    @app.before_request
    def assign_request_id():
        incoming = (request.headers.get('X-Request-ID') or '').strip()
        g.request_id = incoming if REQUEST_ID_PATTERN.match(incoming) else secrets.token_hex(16)

    @app.before_request
    def enforce_csrf():
        if request.method not in UNSAFE_METHODS:
            return
        if path_under(request.path, app.config.get('CSRF_EXEMPT_PATH_PREFIXES', ())):
            return
        expected = session.get(CSRF_FIELD) or ''
        provided = request.form.get(CSRF_FIELD) or request.headers.get('X-CSRF-Token') or ''
        if not (expected and provided and secrets.compare_digest(expected, provided)):
            abort(400, description=CSRF_ERROR)

    @app.context_processor
    def inject_globals():
        from .cms_client import FALLBACK_CONTENT

        return {
            'site_settings': get_site_settings(),
            'nav_menu': FALLBACK_CONTENT['navigation'],
            'csrf_token': get_csrf_token,
            'csrf_input': csrf_input,
            'csp_nonce': get_csp_nonce(),
            'asset_v': app.config['ASSET_VERSION'],
            'current_year': datetime.now().year,
        }

    @app.after_request
    def apply_response_headers(response):
        headers = response.headers
        headers['X-Request-ID'] = g.get('request_id', '')
        for name, value in DEFAULT_RESPONSE_HEADERS.items():
            headers.setdefault(name, value)
        if request.is_secure:
            hsts = f"max-age={app.config.get('HSTS_MAX_AGE', 31536000)}"
            if app.config.get('HSTS_INCLUDE_SUBDOMAINS', True):
                hsts += '; includeSubDomains'
            headers.setdefault('Strict-Transport-Security', hsts)
        if path_under(request.path, PRIVATE_PATH_PREFIXES):
            headers.setdefault('X-Robots-Tag', 'noindex, nofollow, noarchive')

        if request.path.startswith('/static/') and response.status_code in (200, 304):
            headers['Cache-Control'] = 'public, max-age=31536000, immutable'
        # Rendered pages fetch CMS content per request, so the HTML is never cached.
        if (response.mimetype or '') == 'text/html':
            headers.update(NO_STORE_HEADERS)
            headers['Content-Security-Policy'] = content_security_policy(get_csp_nonce(), request.is_secure)
        return response


def register_error_handlers(app):
    def api_error(status, message):
        from .routes.api import apply_cors_headers, error_envelope
        from .routes.headless import headless_error

        if path_under(request.path, ('/api/cms',)):
            # Routing errors never reach the blueprint's own after_request.
            return apply_cors_headers(error_envelope(message, status))
        if path_under(request.path, ('/api/headless',)):
            return headless_error(status, message)
        return None

    @app.errorhandler(400)
    def handle_bad_request(error):
        description = str(getattr(error, 'description', '') or '')
        if description == CSRF_ERROR:
            flash('Your form session expired. Please retry your action.', 'danger')
            return redirect(local_redirect_target(url_for('site.index')))
        return api_error(400, description or 'Bad request') or error

    @app.errorhandler(404)
    def handle_not_found(error):
        return api_error(404, 'Not found') or (render_template('errors/404.html'), 404)

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return api_error(405, 'Method not allowed') or error

    @app.errorhandler(CmsError)
    def handle_cms_error(error):
        response = api_error(error.status_code, error.message)
        if response is not None:
            return response
        if isinstance(error, NotFound):
            return render_template('errors/404.html'), 404
        flash(error.message, 'danger')
        return redirect(local_redirect_target(url_for('site.index')))

    @app.errorhandler(500)
    def handle_server_error(error):
        return api_error(500, 'Internal server error') or (render_template('errors/500.html'), 500)


def register_probes(app):
    @app.get('/healthz')
    def healthz():
        if database_is_reachable():
            return {'status': 'ok'}, 200
        return {'status': 'degraded'}, 503

    @app.get('/readyz')
    def readyz():
        checks = dict.fromkeys(('database', 'site_settings_seeded', 'admin_user_seeded'), False)
        if database_is_reachable():
            checks['database'] = True
            checks['site_settings_seeded'] = db.session.query(SiteSetting.id).first() is not None
            checks['admin_user_seeded'] = db.session.query(User.id).first() is not None
        ready = all(checks.values())
        return {'status': 'ready' if ready else 'warming', 'checks': checks}, (200 if ready else 503)


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config.update(config_overrides or {})
    configure_logging(app)
    app.config['ASSET_VERSION'] = resolve_asset_version(app)

    if not app.config.get('SECRET_KEY'):
        app.config['SECRET_KEY'] = secrets.token_urlsafe(32)
        warnings.warn(
            'SECRET_KEY is not set; sessions and CMS tokens use a per-process key and '
            'will not survive a restart.',
            stacklevel=2,
        )
    if app.config.get('TRUST_PROXY_HEADERS'):
        # Exactly one reverse proxy sits in front of the app.
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    init_sentry(app)
    db.init_app(app)
    login_manager.init_app(app)
    app.jinja_env.filters['rich_text'] = rich_text

    register_request_hooks(app)
    register_error_handlers(app)
    register_probes(app)

    from .routes.admin import admin_bp
    from .routes.api import cms_api_bp
    from .routes.headless import headless_bp
    from .routes.site import site_bp

    app.register_blueprint(site_bp)
    app.register_blueprint(admin_bp, url_prefix='/admin')
    app.register_blueprint(cms_api_bp, url_prefix='/api/cms')
    app.register_blueprint(headless_bp, url_prefix='/api/headless')
    register_cli(app)

    with app.app_context():
        from .seed import seed_database

        try:
            db.create_all()
            seed_database()
        except Exception:
            app.logger.exception('Database bootstrap failed; the app starts without seeded data.')

    return app
