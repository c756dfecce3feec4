"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
session cookie, logging and import settings. It uses environment variables for sensitive information and defaults for
development. In production, make sure to set the appropriate environment variables and secure the secret key.
"""

import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'salesdesk.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie (Flask-Login keeps the user id in the signed session)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.environ.get("SESSION_COOKIE_SECURE", "0") == "1"
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)

    # CSRF protection for mutating requests (token from /api/auth/csrf-token)
    WTF_CSRF_ENABLED = True

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_JSON = os.environ.get("LOG_JSON", "0") == "1"

    # CSV import
    IMPORT_PREVIEW_ROWS = 5
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024

    # Default list page size for API collections
    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 500

    # App UI name (used in print view and PDF header)
    APP_NAME = "SalesDesk Filtros"


class TestingConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    SECRET_KEY = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = "WARNING"
