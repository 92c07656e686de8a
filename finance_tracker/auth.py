import secrets
from datetime import datetime, timedelta
from functools import wraps

import structlog
from flask import current_app, session
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import Conflict, Unauthorized, ValidationFailed
from .mailer import reset_link
from .models import Category, EntryType, User, db

log = structlog.get_logger(__name__)

DEFAULT_CATEGORIES = [
    ('Salary', EntryType.INCOME, '#22c55e'),
    ('Freelance', EntryType.INCOME, '#3b82f6'),
    ('Investment', EntryType.INCOME, '#a855f7'),
    ('Other Income', EntryType.INCOME, '#64748b'),
    ('Food & Dining', EntryType.EXPENSE, '#ef4444'),
    ('Transportation', EntryType.EXPENSE, '#f97316'),
    ('Bills & Utilities', EntryType.EXPENSE, '#eab308'),
    ('Shopping', EntryType.EXPENSE, '#ec4899'),
    ('Entertainment', EntryType.EXPENSE, '#8b5cf6'),
    ('Healthcare', EntryType.EXPENSE, '#06b6d4'),
    ('Rent', EntryType.EXPENSE, '#0ea5e9'),
    ('Groceries', EntryType.EXPENSE, '#84cc16'),
    ('Credit Card & Loan', EntryType.EXPENSE, '#f43f5e'),
    ('Other Expense', EntryType.EXPENSE, '#64748b'),
]

RESET_REQUESTED_MESSAGE = 'If that email exists, a reset link has been sent'


# ---------------------- Session Helpers ----------------------
def current_user_id():
    uid = session.get('user_id')
    if uid and db.session.get(User, uid) is not None:
        return uid
    return None


def login_required(view_func):
    """Reject anonymous callers; pass the caller's id to the view as ``user_id``."""
    @wraps(view_func)
    def wrapped(*args, **kwargs):
        user_id = current_user_id()
        if user_id is None:
            raise Unauthorized()
        return view_func(*args, user_id=user_id, **kwargs)
    return wrapped


def login(user):
    session.clear()
    session['user_id'] = user.id


def logout():
    session.clear()


# ---------------------- Accounts ----------------------
def register_user(data):
    """Create the user and their default categories in one transaction."""
    email = data.email.lower()
    if User.query.filter_by(email=email).first():
        raise Conflict('Email already registered')

    user = User(name=data.name, email=email, password_hash=generate_password_hash(data.password))
    try:
        db.session.add(user)
        db.session.flush()
        db.session.add_all([
            Category(user_id=user.id, name=name, type=kind, color=color, is_default=True)
            for name, kind, color in DEFAULT_CATEGORIES
        ])
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict('Email already registered')
    except Exception:
        db.session.rollback()
        raise
    log.info('user_registered', user_id=user.id)
    return user


def authenticate(email, password):
    user = User.query.filter_by(email=email.lower()).first()
    if not user or not check_password_hash(user.password_hash, password):
        log.info('login_failed')
        raise Unauthorized('Invalid credentials')
    return user


# ---------------------- Password Reset ----------------------
def request_password_reset(email, mailer):
    """Issue a single-use reset token and email the link.

    Unknown addresses are a silent no-op so callers cannot probe for accounts.
    """
    user = User.query.filter_by(email=email.lower()).first()
    if not user:
        log.info('password_reset_unknown_email')
        return

    ttl = current_app.config['RESET_TOKEN_TTL_MINUTES']
    user.reset_token = secrets.token_hex(32)
    user.reset_token_expiry = datetime.now() + timedelta(minutes=ttl)
    db.session.commit()

    link = reset_link(current_app.config['APP_BASE_URL'], user.reset_token)
    mailer.send_password_reset(user.email, link, ttl)
    log.info('password_reset_requested', user_id=user.id)


def reset_password(token, password):
    user = User.query.filter(
        User.reset_token == token,
        User.reset_token_expiry >= datetime.now(),
    ).first()
    if not user:
        raise ValidationFailed('Invalid or expired reset token', field='token')

    user.password_hash = generate_password_hash(password)
    user.reset_token = None
    user.reset_token_expiry = None
    db.session.commit()
    log.info('password_reset_completed', user_id=user.id)
    return user
