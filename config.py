import os
from pathlib import Path

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


def _normalise_prefix(raw_prefix: str) -> str:
    raw_prefix = raw_prefix.strip()
    if not raw_prefix or raw_prefix == "/":
        return ""
    if not raw_prefix.startswith("/"):
        raw_prefix = f"/{raw_prefix}"
    return raw_prefix.rstrip("/")


def _engine_options(isolation_level: str | None) -> dict[str, object]:
    if not isolation_level:
        return {}
    return {"isolation_level": isolation_level.strip().upper()}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")

    URL_PREFIX = _normalise_prefix(os.environ.get("FLASK_URL_PREFIX", ""))

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///tutorplan.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = os.environ.get("DB_ECHO", "false").lower() == "true"
    # Booking checks and inserts share one transaction; SERIALIZABLE makes the
    # store reject interleaved bookings on PostgreSQL.
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(
        os.environ.get("SCHEDULER_ISOLATION_LEVEL")
    )
    AUTO_CREATE_SCHEMA = os.environ.get("AUTO_CREATE_SCHEMA", "true").lower() == "true"

    API_TITLE = os.environ.get("API_TITLE", "Tutorplan API")
    API_VERSION = os.environ.get("API_VERSION", "0.1.0")
    RESTX_ERROR_404_HELP = False
    RESTX_MASK_SWAGGER = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    GENERATION_WORKERS = int(os.environ.get("GENERATION_WORKERS", "1"))
    GENERATION_MAX_DAYS = int(os.environ.get("GENERATION_MAX_DAYS", "366"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS: dict[str, object] = {}
    AUTO_CREATE_SCHEMA = True
    GENERATION_WORKERS = 1
    LOG_LEVEL = "WARNING"
