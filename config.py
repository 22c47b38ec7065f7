"""
Application configuration: environment-aware settings.

All environment variables are documented here. See .env.example for a template.
"""

from __future__ import annotations

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    DATABASE = os.environ.get("DATABASE", str(BASE_DIR / "studyspark.db"))

    # Session security
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    PERMANENT_SESSION_LIFETIME = 86400
    # Live views of users idle this long are released; 0 keeps them until logout
    SESSION_IDLE_TIMEOUT = int(os.environ.get("SESSION_IDLE_TIMEOUT", "1800"))

    # Upload limits
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024  # 8 MB

    # Document and object storage: "sqlite" (local) or "firebase"
    STORE_BACKEND = os.environ.get("STORE_BACKEND", "sqlite")
    FIREBASE_CREDENTIALS = os.environ.get("FIREBASE_CREDENTIALS", "")
    FIREBASE_BUCKET = os.environ.get("FIREBASE_BUCKET", "")
    UPLOAD_DIR = os.environ.get("UPLOAD_DIR", str(BASE_DIR / "uploads"))
    UPLOAD_BASE_URL = os.environ.get("UPLOAD_BASE_URL", "/uploads")

    # AI provider: "gemini" (default), "claude" or "openai"
    AI_PROVIDER = os.environ.get("AI_PROVIDER", "gemini")
    AI_MODEL = os.environ.get("AI_MODEL", "")
    GOOGLE_API_KEY = os.environ.get("GOOGLE_API_KEY", "")
    ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    AI_CACHE_TTL = int(os.environ.get("AI_CACHE_TTL", "0"))  # seconds; 0 disables

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Email
    EMAIL_BACKEND = os.environ.get("EMAIL_BACKEND", "log")  # "log" or "smtp"
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME", "")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD", "")
    MAIL_FROM = os.environ.get("MAIL_FROM", "noreply@example.com")
    BASE_URL = os.environ.get("BASE_URL", "http://localhost:5001")

    # Public search
    PUBLIC_SEARCH_PAGE_SIZE = int(os.environ.get("PUBLIC_SEARCH_PAGE_SIZE", "20"))
    PUBLIC_SEARCH_MIN_LENGTH = int(os.environ.get("PUBLIC_SEARCH_MIN_LENGTH", "3"))
    SEARCH_DEBOUNCE_SECONDS = float(os.environ.get("SEARCH_DEBOUNCE_SECONDS", "0.5"))

    # Rate limiting (defaults to in-memory)
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "") or "memory://"


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")
    SESSION_COOKIE_SECURE = True

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")

        if cls.STORE_BACKEND not in ("sqlite", "firebase"):
            errors.append(f"STORE_BACKEND must be 'sqlite' or 'firebase', not {cls.STORE_BACKEND!r}.")

        if cls.STORE_BACKEND == "firebase" and not cls.FIREBASE_BUCKET:
            errors.append("FIREBASE_BUCKET is required when STORE_BACKEND=firebase.")

        key_for_provider = {
            "gemini": cls.GOOGLE_API_KEY,
            "claude": cls.ANTHROPIC_API_KEY,
            "openai": cls.OPENAI_API_KEY,
        }
        if cls.AI_PROVIDER not in key_for_provider:
            errors.append(f"Unknown AI_PROVIDER {cls.AI_PROVIDER!r}.")
        elif not key_for_provider[cls.AI_PROVIDER]:
            warnings.warn(f"No API key set for AI provider {cls.AI_PROVIDER}: AI features will be unavailable.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    RATELIMIT_ENABLED = False
    AI_CACHE_TTL = 0


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
