"""Application configuration helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Type


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class BaseConfig:
    """Base configuration shared across environments."""

    PROJECT_ROOT = Path(__file__).resolve().parent.parent
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "dev-secret-change-me")
    DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite:///{PROJECT_ROOT / 'ccis_connect.db'}"
    WTF_CSRF_ENABLED = True
    SESSION_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_HTTPONLY = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Ledger behaviour
    AUTO_RELEASE_SECONDS = int(os.getenv("AUTO_RELEASE_SECONDS", "600"))
    CLASS_HOURS_START = int(os.getenv("CLASS_HOURS_START", "8"))
    CLASS_HOURS_END = int(os.getenv("CLASS_HOURS_END", "17"))
    ENFORCE_BORROWER_LIMITS = _env_flag("ENFORCE_BORROWER_LIMITS", True)
    RECENT_REQUESTS_LIMIT = 10


class DevelopmentConfig(BaseConfig):
    """Configuration tweaks for local development."""

    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    """Temporary database configuration for pytest."""

    DEBUG = False
    TESTING = True
    DATABASE_URL = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    AUTO_RELEASE_SECONDS = 0
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    """Production hardened configuration."""

    DEBUG = False
    TESTING = False
    PREFERRED_URL_SCHEME = "https"


def get_config() -> Type[BaseConfig]:
    """Return the configuration class based on FLASK_ENV."""

    env = os.getenv("FLASK_ENV", "development").lower()
    if env == "production":
        return ProductionConfig
    if env == "testing":
        return TestingConfig
    return DevelopmentConfig
