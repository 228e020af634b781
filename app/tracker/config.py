import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    local_storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    mapbox_token: str
    login_email_domain: str
    default_reset_password: str
    signed_url_ttl_seconds: int
    geocode_delay_seconds: float
    max_photo_bytes: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///tracker.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        local_storage_root=_getenv("LOCAL_STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "us-west-2"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        mapbox_token=_getenv("MAPBOX_TOKEN", ""),
        login_email_domain=_getenv("LOGIN_EMAIL_DOMAIN", "cascadia.local").lower(),
        default_reset_password=_getenv("DEFAULT_RESET_PASSWORD", "Cascadia1"),
        signed_url_ttl_seconds=_getenv_int("SIGNED_URL_TTL_SECONDS", 3600),
        geocode_delay_seconds=_getenv_float("GEOCODE_DELAY_SECONDS", 0.2),
        max_photo_bytes=_getenv_int("MAX_PHOTO_BYTES", 10 * 1024 * 1024),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "LOCAL_STORAGE_ROOT": s.local_storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "MAPBOX_TOKEN": s.mapbox_token,
        "LOGIN_EMAIL_DOMAIN": s.login_email_domain,
        "DEFAULT_RESET_PASSWORD": s.default_reset_password,
        "SIGNED_URL_TTL_SECONDS": s.signed_url_ttl_seconds,
        "GEOCODE_DELAY_SECONDS": s.geocode_delay_seconds,
        "MAX_PHOTO_BYTES": s.max_photo_bytes,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        # photo (10MB) + spreadsheet uploads; per-photo limit enforced in the visits module
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }
