"""Flask application configuration."""
import os
from datetime import timedelta


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


class Config:
    """Base configuration."""

    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL',
        'sqlite:///thesis_coach.db'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # Session
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)
    SESSION_COOKIE_SECURE = False  # Set True in production with HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Accounts and audit log
    MIN_PASSWORD_LENGTH = _env_int('MIN_PASSWORD_LENGTH', 4)
    AUDIT_LOG_LIMIT = _env_int('AUDIT_LOG_LIMIT', 100)
    # Demo accounts created on first start: (email, name, role, password)
    SEED_USERS = [
        ('user@mail.com', '一般學生', 'user', os.environ.get('SEED_USER_PASSWORD', '1234')),
        ('boss@mail.com', '系統管理員', 'admin', os.environ.get('SEED_ADMIN_PASSWORD', '1234')),
    ]

    # Writing coach
    COACH_INITIAL_MASTERY = _env_int('COACH_INITIAL_MASTERY', 30)
    COACH_HISTORY_WINDOW = _env_int('COACH_HISTORY_WINDOW', 3)
    COACH_ANALYSIS_DELAY_SECONDS = _env_float('COACH_ANALYSIS_DELAY_SECONDS', 0.8)
    COACH_REPLY_DELAY_SECONDS = _env_float('COACH_REPLY_DELAY_SECONDS', 0.6)
    # Abandoned coach sessions are dropped after this much inactivity
    COACH_SESSION_IDLE_TIMEOUT = timedelta(minutes=_env_int('COACH_SESSION_IDLE_MINUTES', 120))

    # CORS (for development)
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '*')


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = True
    SEED_USERS = []


class TestingConfig(Config):
    """Test configuration: in-memory database, no artificial delays."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    COACH_ANALYSIS_DELAY_SECONDS = 0.0
    COACH_REPLY_DELAY_SECONDS = 0.0


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
