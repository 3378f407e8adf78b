"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
mail delivery, object storage and logging. It uses environment variables for sensitive information and defaults for
development. In production, make sure to set the appropriate environment variables and secure the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'projectflow.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection for session-authenticated JSON requests (X-CSRFToken header)
    WTF_CSRF_ENABLED = True

    APP_NAME = "Technical Services Project Workflow"

    # Links inside notification emails point here
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")

    # Notification delivery: "smtp" or "console"
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "console")
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
    MAIL_USE_TLS = os.environ.get("MAIL_USE_TLS", "1") == "1"
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "noreply@example.com")
    MAIL_TIMEOUT = 10
    NOTIFICATION_INBOX = os.environ.get("NOTIFICATION_INBOX", "notifications@example.com")
    CONTACT_EMAIL = os.environ.get("CONTACT_EMAIL", "info@example.com")

    # Attachments (LPO documents, quotation item images, site pictures)
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", str(BASE_DIR / "uploads"))
    UPLOAD_URL_PREFIX = "/uploads"
    MAX_CONTENT_LENGTH = 20 * 1024 * 1024

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Default VAT for new quotations (percent)
    DEFAULT_VAT_PERCENTAGE = 5


class TestConfig(Config):
    """Configuration used by the test-suite."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    MAIL_BACKEND = "console"
    LOG_LEVEL = "DEBUG"
