"""
Application configuration — environment-aware settings.

All environment variables are documented here. A local .env file is loaded
if present.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent

load_dotenv(BASE_DIR / ".env")


# ---------------------------------------------------------------------------
# Feature flags (simple dict, no external service)
# ---------------------------------------------------------------------------
FEATURE_FLAGS: dict[str, bool] = {
    "promotion_report_job": True,
}


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    DATABASE = os.environ.get("DATABASE_URL", str(BASE_DIR / "dojo.db"))

    # Upload limits (JSON bodies only)
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1 MB

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Rate limiting (defaults to in-memory; set REDIS_URL for Redis-backed)
    REDIS_URL = os.environ.get("REDIS_URL", "")
    RATELIMIT_STORAGE_URI = REDIS_URL or "memory://"

    # Performance trends
    TREND_WINDOW_SIZE = int(os.environ.get("TREND_WINDOW_SIZE", "8"))
    TREND_EPSILON = float(os.environ.get("TREND_EPSILON", "0.1"))
    SCORE_MIN = int(os.environ.get("SCORE_MIN", "0"))  # red
    SCORE_MAX = int(os.environ.get("SCORE_MAX", "2"))  # green

    # Nightly promotion readiness report (hour of day, server time)
    PROMOTION_REPORT_HOUR = int(os.environ.get("PROMOTION_REPORT_HOUR", "3"))

    FEATURE_FLAGS = FEATURE_FLAGS


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")
        if cls.TREND_WINDOW_SIZE <= 0:
            errors.append("TREND_WINDOW_SIZE must be positive.")
        if cls.SCORE_MIN > cls.SCORE_MAX:
            errors.append("SCORE_MIN must not exceed SCORE_MAX.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    RATELIMIT_ENABLED = False


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
