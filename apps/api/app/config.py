import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict


_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(_ENV_PATH, override=False)


def _get_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _get_float_env(name: str, default: float) -> float:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _get_int_env(name: str) -> int | None:
    raw = _get_env(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def get_backend_url() -> str:
    """Return the origin that `/backend/*` requests are forwarded to."""
    return (_get_env("BACKEND_URL") or "http://localhost:8000").rstrip("/")


def get_deployment_hostname() -> str | None:
    return _get_env("VERCEL_URL")


def get_local_origin() -> str:
    return (_get_env("LOCAL_ORIGIN") or "http://localhost:3000").rstrip("/")


def get_protection_bypass_secret() -> str | None:
    return _get_env("VERCEL_AUTOMATION_BYPASS_SECRET")


def get_upload_callback_url() -> str | None:
    return _get_env("UPLOAD_CALLBACK_URL")


def get_upload_token_ttl_sec() -> int:
    ttl = _get_int_env("UPLOAD_TOKEN_TTL_SEC") or 900
    return max(60, min(3600, ttl))


def get_upload_key_prefix() -> str:
    return (_get_env("UPLOAD_KEY_PREFIX") or "uploads").strip("/")


def get_upload_max_size_bytes() -> int | None:
    value = _get_int_env("UPLOAD_MAX_SIZE_BYTES")
    if value is None or value <= 0:
        return None
    return value


def get_notify_timeout_sec() -> float:
    return _get_float_env("NOTIFY_TIMEOUT_SEC", 240.0)


def get_proxy_timeout_sec() -> float:
    return _get_float_env("PROXY_TIMEOUT_SEC", 300.0)


def get_cors_allow_origins() -> list[str]:
    raw = _get_env("CORS_ALLOW_ORIGINS") or "http://localhost:3000"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_log_level() -> str:
    return _get_env("LOG_LEVEL") or "INFO"


def get_s3_bucket() -> str | None:
    return _get_env("S3_BUCKET")


def get_s3_region() -> str:
    return _get_env("S3_REGION") or "ap-northeast-2"


def get_s3_access_key_id() -> str | None:
    return _get_env("S3_ACCESS_KEY_ID")


def get_s3_secret_access_key() -> str | None:
    return _get_env("S3_SECRET_ACCESS_KEY")


def get_s3_session_token() -> str | None:
    return _get_env("S3_SESSION_TOKEN")


def get_s3_endpoint_url() -> str | None:
    return _get_env("S3_ENDPOINT_URL")


class Settings(BaseModel):
    """Process-wide configuration, built once at startup and passed to handlers."""

    model_config = ConfigDict(frozen=True)

    backend_url: str = "http://localhost:8000"
    deployment_hostname: str | None = None
    local_origin: str = "http://localhost:3000"
    protection_bypass_secret: str | None = None

    upload_callback_url: str | None = None
    upload_token_ttl_sec: int = 900
    upload_key_prefix: str = "uploads"
    upload_max_size_bytes: int | None = None

    notify_timeout_sec: float = 240.0
    proxy_timeout_sec: float = 300.0

    s3_bucket: str | None = None
    s3_region: str = "ap-northeast-2"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_session_token: str | None = None
    s3_endpoint_url: str | None = None

    cors_allow_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    @property
    def resolved_s3_endpoint_url(self) -> str:
        return (self.s3_endpoint_url or f"https://s3.{self.s3_region}.amazonaws.com").rstrip("/")


def load_settings() -> Settings:
    return Settings(
        backend_url=get_backend_url(),
        deployment_hostname=get_deployment_hostname(),
        local_origin=get_local_origin(),
        protection_bypass_secret=get_protection_bypass_secret(),
        upload_callback_url=get_upload_callback_url(),
        upload_token_ttl_sec=get_upload_token_ttl_sec(),
        upload_key_prefix=get_upload_key_prefix(),
        upload_max_size_bytes=get_upload_max_size_bytes(),
        notify_timeout_sec=get_notify_timeout_sec(),
        proxy_timeout_sec=get_proxy_timeout_sec(),
        s3_bucket=get_s3_bucket(),
        s3_region=get_s3_region(),
        s3_access_key_id=get_s3_access_key_id(),
        s3_secret_access_key=get_s3_secret_access_key(),
        s3_session_token=get_s3_session_token(),
        s3_endpoint_url=get_s3_endpoint_url(),
        cors_allow_origins=get_cors_allow_origins(),
        log_level=get_log_level(),
    )
