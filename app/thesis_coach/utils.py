"""Utility functions for the Flask application."""
import bcrypt
from functools import wraps
from flask import current_app, jsonify, session

from .models import db, User, SystemLog, ROLE_USER


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a bcrypt hash."""
    password_bytes = password.encode('utf-8')
    hash_bytes = password_hash.encode('utf-8')
    return bcrypt.checkpw(password_bytes, hash_bytes)


def get_current_user():
    """Get the currently logged-in user."""
    user_id = session.get('user_id')
    if user_id:
        return db.session.get(User, user_id)
    return None


def login_required(f):
    """Decorator to require login for a route."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_current_user() is None:
            return jsonify({'error': 'Not authenticated'}), 401
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to require an admin account for a route."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if user is None:
            return jsonify({'error': 'Not authenticated'}), 401
        if not user.is_admin:
            return jsonify({'error': 'Admin access required'}), 403
        return f(*args, **kwargs)
    return decorated_function


def create_user(email: str, name: str, password: str, role: str = ROLE_USER) -> User:
    """Create and stage a user; the caller commits."""
    user = User(email=email, name=name, role=role, password_hash=hash_password(password))
    db.session.add(user)
    return user


def seed_users(seeds) -> int:
    """Create any seed accounts that do not exist yet. Returns how many were added."""
    added = 0
    for email, name, role, password in seeds:
        if User.query.filter_by(email=email).first():
            continue
        create_user(email, name, password, role=role)
        added += 1
    if added:
        db.session.commit()
    return added


def add_log(user_email: str, action: str, details: str = '') -> SystemLog:
    """Append an audit entry and prune the table to the most recent AUDIT_LOG_LIMIT rows."""
    entry = SystemLog(user_email=user_email, action=action, details=details or '')
    db.session.add(entry)
    db.session.flush()

    limit = current_app.config.get('AUDIT_LOG_LIMIT', 100)
    stale_ids = [
        row.id for row in SystemLog.query
        .order_by(SystemLog.created_at.desc(), SystemLog.id.desc())
        .offset(limit)
        .all()
    ]
    if stale_ids:
        SystemLog.query.filter(SystemLog.id.in_(stale_ids)).delete(synchronize_session=False)

    db.session.commit()
    current_app.logger.info(f"[System Log] {action}: {details}")
    return entry


def get_logs(limit: int = None):
    """Most recent audit entries first."""
    query = SystemLog.query.order_by(SystemLog.created_at.desc(), SystemLog.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def clear_logs() -> int:
    """Delete every audit entry. Returns the number removed."""
    removed = SystemLog.query.delete()
    db.session.commit()
    return removed
