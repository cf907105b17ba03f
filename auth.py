from datetime import datetime, timedelta
import jwt
from blinker import Namespace
from email_validator import validate_email, EmailNotValidError
from flask import current_app
from flask_login import login_user, logout_user
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.security import generate_password_hash, check_password_hash
from errors import ValidationError, AuthError, NetworkError
from models import User, Profile, UserRole

SIGNED_IN = 'SIGNED_IN'
SIGNED_OUT = 'SIGNED_OUT'
TOKEN_REFRESHED = 'TOKEN_REFRESHED'

_signals = Namespace()
# sent with event=<one of the names above> and user=<User or None>
session_changed = _signals.signal('session-changed')


class AuthContext:
    """Who is calling, and whether they are an admin.

    Built fresh for every request and every session change; never patched.
    """

    def __init__(self, user_id, email, is_admin):
        self.user_id = user_id
        self.email = email
        self.is_admin = is_admin

    def __repr__(self):
        return f'<AuthContext {self.email} admin={self.is_admin}>'


def has_role(session, user_id, role):
    return session.query(UserRole.id).filter_by(user_id=user_id, role=role).first() is not None


def resolve_is_admin(session, user_id, email):
    config = current_app.config
    if config['ROLE_EMAIL_SHORTCUT'] and email and email.lower() == config['BOOTSTRAP_ADMIN_EMAIL'].lower():
        current_app.logger.debug('Admin role detected by email: %s', email)
        return True
    try:
        found = has_role(session, user_id, 'admin')
    except Exception as e:
        current_app.logger.warning('Role lookup failed for %s, treating as student: %s', user_id, e)
        session.rollback()
        return False
    return found


def build_auth_context(session, user):
    if user is None:
        return None
    return AuthContext(user.id, user.email, resolve_is_admin(session, user.id, user.email))


def _emit(event, user=None):
    app = current_app._get_current_object()
    app.logger.info('Session event %s for %s', event, user.email if user else '-')
    session_changed.send(app, event=event, user=user)


def _validate_signup(email, password, full_name):
    email = (email or '').strip()
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        raise ValidationError('Invalid email address')
    if len(email) > 255:
        raise ValidationError('Invalid email address')
    password = password or ''
    if len(password) < 6:
        raise ValidationError('Password must be at least 6 characters')
    if len(password) > 100:
        raise ValidationError('Password must be at most 100 characters')
    full_name = (full_name or '').strip()
    if len(full_name) < 2:
        raise ValidationError('Name must be at least 2 characters')
    if len(full_name) > 100:
        raise ValidationError('Name must be at most 100 characters')
    return email.lower(), password, full_name


def sign_up(session, email, password, full_name):
    email, password, full_name = _validate_signup(email, password, full_name)
    if session.query(User.id).filter_by(email=email).first():
        raise AuthError('This email is already registered')
    user = User(email=email, password_hash=generate_password_hash(password), full_name=full_name)
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise AuthError('This email is already registered')
    except OperationalError as e:
        session.rollback()
        current_app.logger.error('Sign up failed: %s', e)
        raise NetworkError()
    current_app.logger.info('New identity %s registered', email)
    return user


def authenticate(session, email, password):
    user = session.query(User).filter_by(email=(email or '').strip().lower()).first()
    if not user or not check_password_hash(user.password_hash, password or ''):
        raise AuthError('Invalid email or password')
    return user


def sign_in(session, email, password):
    user = authenticate(session, email, password)
    login_user(user)
    _emit(SIGNED_IN, user)
    return user


def sign_out():
    logout_user()
    _emit(SIGNED_OUT)


def issue_token(user):
    payload = {
        'sub': user.id,
        'exp': datetime.utcnow() + timedelta(seconds=current_app.config['JWT_EXP_SECONDS'])
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm='HS256')


def decode_token(session, token):
    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=['HS256'])
    except jwt.PyJWTError as e:
        raise AuthError(f'invalid token: {e}')
    user = session.get(User, payload.get('sub'))
    if not user:
        raise AuthError('user not found')
    return user


def sign_in_token(session, email, password):
    user = authenticate(session, email, password)
    _emit(SIGNED_IN, user)
    return issue_token(user)


def refresh_token(session, token):
    user = decode_token(session, token)
    _emit(TOKEN_REFRESHED, user)
    return issue_token(user)


def ensure_bootstrap_admin(session):
    """Create the bootstrap admin identity unless it already exists.

    Returns ``(user, created)``.
    """
    email = current_app.config['BOOTSTRAP_ADMIN_EMAIL']
    existing = session.query(User).filter_by(email=email).first()
    if existing:
        return existing, False
    user = sign_up(session, email, current_app.config['BOOTSTRAP_ADMIN_PASSWORD'], 'Admin')
    return user, True


def get_profile(session, ctx):
    return session.get(Profile, ctx.user_id)


def update_profile(session, ctx, full_name):
    full_name = (full_name or '').strip()
    if len(full_name) < 2:
        raise ValidationError('Name must be at least 2 characters')
    if len(full_name) > 100:
        raise ValidationError('Name must be at most 100 characters')
    profile = session.get(Profile, ctx.user_id)
    profile.full_name = full_name
    session.commit()
    return profile


def get_roles(session, ctx):
    rows = session.query(UserRole.role).filter_by(user_id=ctx.user_id).all()
    return [r.role for r in rows]
