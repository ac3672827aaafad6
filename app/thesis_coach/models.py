"""SQLAlchemy database models for accounts and the audit log."""
from datetime import datetime, timezone
import sqlite3

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()

ROLE_USER = 'user'
ROLE_ADMIN = 'admin'


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite connections for better concurrency."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout=15000;")
        cursor.close()


def utcnow():
    """Get current UTC time."""
    return datetime.now(timezone.utc)


class User(db.Model):
    """User account model."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True, index=True)
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), default=ROLE_USER, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self):
        return f'<User {self.email}>'

    def to_dict(self):
        """Convert user to dictionary (never includes the password hash)."""
        return {
            'email': self.email,
            'name': self.name,
            'role': self.role,
        }


class SystemLog(db.Model):
    """Audit trail entry (logins, generations, chat turns, analyses)."""
    __tablename__ = 'system_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_email = db.Column(db.String(255), index=True, nullable=False)
    action = db.Column(db.String(50), nullable=False)  # e.g., LOGIN, GENERATE_THESIS, CHAT_USER
    details = db.Column(db.Text, nullable=False, default='')
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f'<SystemLog {self.action} by {self.user_email}>'

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': self.created_at.isoformat() if self.created_at else None,
            'user_email': self.user_email,
            'action': self.action,
            'details': self.details,
        }
