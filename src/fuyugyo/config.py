import os

MIN_JWT_SECRET_LENGTH = 32


def require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required env var: {name}")
    return value


def optional_env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def get_database_url() -> str:
    return require_env("DATABASE_URL")


def get_jwt_secret() -> str:
    secret = require_env("JWT_SECRET")
    if len(secret) < MIN_JWT_SECRET_LENGTH:
        raise RuntimeError(f"JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters")
    return secret


def get_jwt_expires_in() -> str:
    return optional_env("JWT_EXPIRES_IN", "48h") or "48h"


def get_line_channel_id() -> str:
    return require_env("LINE_CHANNEL_ID")


def get_line_channel_secret() -> str:
    return require_env("LINE_CHANNEL_SECRET")


def get_app_base_url() -> str:
    return (optional_env("APP_BASE_URL", "http://localhost:3000") or "http://localhost:3000").rstrip("/")


def get_line_redirect_uri() -> str:
    return optional_env("LINE_REDIRECT_URI") or f"{get_app_base_url()}/api/auth/line/callback"


def get_environment() -> str:
    return optional_env("ENVIRONMENT", "production") or "production"


def get_cookie_secure() -> bool:
    raw = optional_env("COOKIE_SECURE")
    if raw is None:
        return get_environment() != "development"
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def get_log_level() -> str:
    return optional_env("LOG_LEVEL", "INFO") or "INFO"


def get_backend_build_version() -> str:
    return optional_env("BACKEND_BUILD_VERSION", "dev") or "dev"
