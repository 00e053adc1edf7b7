"""
Todo Collaboration Service
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name]())
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'todo_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() not in ("false", "0", "no", "off")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Identity (JWT bearer tokens issued by the identity provider)
    SECURITY_ENABLED = _env_flag("SECURITY_ENABLED", "true")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = int(os.getenv("JWT_ACCESS_EXPIRES", "900"))
    DEV_USER_NAME = os.getenv("DEV_USER_NAME", "duke")
    DEV_USER_EMAIL = os.getenv("DEV_USER_EMAIL", "duke@localhost")

    # Messaging (SQS sharing queue + SNS updates topic)
    MESSAGING_BACKEND = os.getenv("MESSAGING_BACKEND", "aws")
    AWS_REGION = os.getenv("AWS_REGION", "eu-central-1")
    AWS_ENDPOINT_URL = os.getenv("AWS_ENDPOINT_URL")  # e.g. http://localhost:4566 for LocalStack
    SHARING_QUEUE = os.getenv("SHARING_QUEUE", "todo-sharing")
    UPDATES_TOPIC = os.getenv("UPDATES_TOPIC", "todo-updates")
    MESSAGING_CONNECT_TIMEOUT = int(os.getenv("MESSAGING_CONNECT_TIMEOUT", "5"))
    MESSAGING_READ_TIMEOUT = int(os.getenv("MESSAGING_READ_TIMEOUT", "10"))

    # Rate limiting
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )
    # Auth disabled by default in development; requests act as DEV_USER_NAME
    SECURITY_ENABLED = _env_flag("SECURITY_ENABLED", "false")
    MESSAGING_BACKEND = os.getenv("MESSAGING_BACKEND", "memory")


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SECURITY_ENABLED = True
    JWT_SECRET_KEY = "test-jwt-secret-key-with-at-least-32-bytes"
    MESSAGING_BACKEND = "memory"
    SHARING_QUEUE = "test-sharing-queue"
    UPDATES_TOPIC = "test-updates-topic"
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
