"""
Application configuration loaded from environment variables.

A .env file in backend/ is read first. DATABASE_MODE picks the local or
cloud PostgreSQL (and Firestore database); DATABASE_URL overrides both.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

backend_dir = Path(__file__).parent.parent
load_dotenv(backend_dir / ".env")


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


class Config:
    """Application configuration."""

    # Flask
    DEBUG = os.getenv("FLASK_DEBUG", "0") == "1"
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # "local" or "cloud"
    DATABASE_MODE = os.getenv("DATABASE_MODE", "local")
    DATABASE_URL = os.getenv("DATABASE_URL", "")

    # Duty lifecycle
    DUTY_TIMEZONE = os.getenv("DUTY_TIMEZONE", "Asia/Manila")
    DUTY_TICK_SECONDS = _float("DUTY_TICK_SECONDS", "60")
    ENABLE_DUTY_TICKER = _flag("ENABLE_DUTY_TICKER")
    BEAT_LOCK_TIMEOUT_SECONDS = _float("BEAT_LOCK_TIMEOUT_SECONDS", "5")

    # Beat radius bounds (meters, inclusive)
    BEAT_RADIUS_MIN_M = _float("BEAT_RADIUS_MIN_M", "10")
    BEAT_RADIUS_MAX_M = _float("BEAT_RADIUS_MAX_M", "10000")

    # Firestore live-monitoring projection
    ENABLE_FIRESTORE = _flag("ENABLE_FIRESTORE")
    GCP_PROJECT_ID = os.getenv("GCP_PROJECT_ID", "")
    GCP_CREDENTIALS_PATH = os.getenv("GCP_CREDENTIALS_PATH", "./gcp-credentials.json")
    FIRESTORE_DATABASE_LOCAL = os.getenv("FIRESTORE_DATABASE_LOCAL", "beatwatch-dev")
    FIRESTORE_DATABASE_CLOUD = os.getenv("FIRESTORE_DATABASE_CLOUD", "(default)")

    @classmethod
    def postgres_settings(cls) -> dict:
        """Connection parts for the active DATABASE_MODE (POSTGRES_*_LOCAL / _CLOUD)."""
        suffix = "CLOUD" if cls.DATABASE_MODE == "cloud" else "LOCAL"
        return {
            "mode": suffix,
            "host": os.getenv(f"POSTGRES_HOST_{suffix}", "localhost" if suffix == "LOCAL" else ""),
            "port": os.getenv(f"POSTGRES_PORT_{suffix}", "5432"),
            "db": os.getenv(f"POSTGRES_DB_{suffix}", "beatwatch"),
            "user": os.getenv(f"POSTGRES_USER_{suffix}", "postgres"),
            "password": os.getenv(f"POSTGRES_PASSWORD_{suffix}", ""),
        }

    @classmethod
    def get_database_url(cls) -> str:
        """PostgreSQL URL: DATABASE_URL if set, else composed from POSTGRES_* settings."""
        if cls.DATABASE_URL:
            return cls.DATABASE_URL

        pg = cls.postgres_settings()
        credentials = f"{pg['user']}:{pg['password']}" if pg["password"] else pg["user"]
        print(f"[Config] PostgreSQL: {pg['mode']} ({pg['host']})")
        return f"postgresql://{credentials}@{pg['host']}:{pg['port']}/{pg['db']}"

    @classmethod
    def get_firestore_database(cls) -> str:
        if cls.DATABASE_MODE == "cloud":
            return cls.FIRESTORE_DATABASE_CLOUD
        return cls.FIRESTORE_DATABASE_LOCAL


# Singleton instance
config = Config()
