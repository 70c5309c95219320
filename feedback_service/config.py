import os
from dotenv import dotenv_values

class BaseConfig:
    # Secrets (env in prod; dev/test may use defaults)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-not-secure")

    # Database (env in prod; dev/test may use default)
    _ENV_FALLBACK = dotenv_values(".env")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or _ENV_FALLBACK.get("DATABASE_URL") or "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging / misc
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Cookies: secure-by-default
    SESSION_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Flask-Limiter default: off globally; prefer per-route limits
    RATELIMIT_DEFAULT = None

    # --- Feedback rules ---
    FEEDBACK_TEXT_MAX_LENGTH = int(os.getenv("FEEDBACK_TEXT_MAX_LENGTH", "1000"))
    FEEDBACK_PAGE_SIZE_DEFAULT = int(os.getenv("FEEDBACK_PAGE_SIZE_DEFAULT", "10"))
    FEEDBACK_PAGE_SIZE_MAX = int(os.getenv("FEEDBACK_PAGE_SIZE_MAX", "50"))
    AUDIT_EDIT_REASON_MAX_LENGTH = int(os.getenv("AUDIT_EDIT_REASON_MAX_LENGTH", "500"))

    # --- Bulk create ---
    BULK_MAX_ENTRIES = int(os.getenv("BULK_MAX_ENTRIES", "100"))
    BULK_DUPLICATE_WINDOW_HOURS = int(os.getenv("BULK_DUPLICATE_WINDOW_HOURS", "24"))

    # --- Export gate (per principal, fixed window) ---
    EXPORT_RATE_LIMIT = os.getenv("EXPORT_RATE_LIMIT", "5 per hour")
    # None -> share RATELIMIT_STORAGE_URI chosen in create_app()
    EXPORT_RATELIMIT_STORAGE_URI = os.getenv("EXPORT_RATELIMIT_STORAGE_URI")

class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False

class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING")
    # Presence is enforced in create_app() (fail fast at boot)
    SECRET_KEY = os.environ.get("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL")
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True
    SESSION_COOKIE_SAMESITE = os.environ.get("SESSION_COOKIE_SAMESITE", "Lax")

    # Mutations run read-modify-write inside one transaction; Postgres default
    # is READ COMMITTED but pin it so a server-side change can't weaken it.
    # Bulk create relies on it: reads after the manager row lock is granted
    # see batches committed while it waited.
    # A slow transaction is cut by statement_timeout and surfaces as Transient.
    DB_STATEMENT_TIMEOUT_MS = int(os.environ.get("DB_STATEMENT_TIMEOUT_MS", "5000"))
    SQLALCHEMY_ENGINE_OPTIONS = {
        "isolation_level": "READ COMMITTED",
        "pool_pre_ping": True,
        "connect_args": {"options": f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}"},
    }

class TestingConfig(BaseConfig):
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    RATELIMIT_ENABLED = False

_ENV_MAP = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}

def get_config():
    env = os.environ.get("APP_ENV", "development").lower()
    return _ENV_MAP.get(env, DevelopmentConfig)
