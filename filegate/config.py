import os
import re
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(_ENV_PATH, override=False)

_SIZE_UNITS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}
_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB)$", re.IGNORECASE)
_DEFAULT_MAX_FILE_BYTES = 10 * 1024 * 1024

MAX_FILES_PER_REQUEST = 10


def _get_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _get_int_env(name: str, default: int) -> int:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_size(size: str) -> int:
    """Convert a human-readable size such as ``100MB`` into bytes.

    Units are 1024-based. Anything unparseable falls back to 10MB.
    """
    match = _SIZE_PATTERN.match(size.strip())
    if not match:
        return _DEFAULT_MAX_FILE_BYTES
    return int(float(match.group(1)) * _SIZE_UNITS[match.group(2).upper()])


def get_port() -> int:
    return _get_int_env("PORT", 3000)


def get_app_env() -> str:
    return _get_env("APP_ENV") or "development"


def get_log_level() -> str:
    return (_get_env("LOG_LEVEL") or "INFO").upper()


def get_minio_endpoint() -> str:
    return _get_env("MINIO_ENDPOINT") or "localhost"


def get_minio_port() -> int:
    return _get_int_env("MINIO_PORT", 9000)


def get_minio_use_ssl() -> bool:
    return (_get_env("MINIO_USE_SSL") or "false").lower() == "true"


def get_minio_access_key() -> str:
    return _get_env("MINIO_ACCESS_KEY") or "minioadmin"


def get_minio_secret_key() -> str:
    return _get_env("MINIO_SECRET_KEY") or "minioadmin"


def get_minio_region() -> str:
    return _get_env("MINIO_REGION") or "us-east-1"


def get_minio_bucket_name() -> str:
    return _get_env("MINIO_BUCKET_NAME") or "uploads"


def get_max_file_size() -> str:
    return _get_env("MAX_FILE_SIZE") or "100MB"


def get_allowed_file_types() -> list[str]:
    raw = _get_env("ALLOWED_FILE_TYPES")
    if raw is None:
        return ["video/*", "image/*", "application/pdf"]
    return _split_csv(raw)


def get_cors_origins() -> list[str]:
    """Return allowed CORS origins.

    ``CORS_ORIGIN`` accepts a single origin, a comma-separated list, or ``*``.
    """
    raw = _get_env("CORS_ORIGIN")
    if raw is None:
        return ["http://localhost:3000"]
    return _split_csv(raw)


def get_rate_limit_window_ms() -> int:
    return _get_int_env("RATE_LIMIT_WINDOW_MS", 900_000)


def get_rate_limit_max_requests() -> int:
    return _get_int_env("RATE_LIMIT_MAX_REQUESTS", 100)


def get_presigned_url_expiry() -> int:
    return _get_int_env("PRESIGNED_URL_EXPIRY", 3600)


def get_request_timeout_seconds() -> int:
    return _get_int_env("REQUEST_TIMEOUT_SECONDS", 30)


@dataclass(frozen=True)
class Settings:
    port: int
    app_env: str
    log_level: str
    minio_endpoint: str
    minio_port: int
    minio_use_ssl: bool
    minio_access_key: str
    minio_secret_key: str
    minio_region: str
    bucket_name: str
    max_file_size: str
    allowed_file_types: tuple[str, ...]
    cors_origins: tuple[str, ...]
    rate_limit_window_ms: int
    rate_limit_max_requests: int
    presigned_url_expiry: int
    request_timeout_seconds: float

    @property
    def max_file_bytes(self) -> int:
        return parse_size(self.max_file_size)

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def minio_endpoint_url(self) -> str:
        scheme = "https" if self.minio_use_ssl else "http"
        return f"{scheme}://{self.minio_endpoint}:{self.minio_port}"


def load_settings() -> Settings:
    return Settings(
        port=get_port(),
        app_env=get_app_env(),
        log_level=get_log_level(),
        minio_endpoint=get_minio_endpoint(),
        minio_port=get_minio_port(),
        minio_use_ssl=get_minio_use_ssl(),
        minio_access_key=get_minio_access_key(),
        minio_secret_key=get_minio_secret_key(),
        minio_region=get_minio_region(),
        bucket_name=get_minio_bucket_name(),
        max_file_size=get_max_file_size(),
        allowed_file_types=tuple(get_allowed_file_types()),
        cors_origins=tuple(get_cors_origins()),
        rate_limit_window_ms=get_rate_limit_window_ms(),
        rate_limit_max_requests=get_rate_limit_max_requests(),
        presigned_url_expiry=get_presigned_url_expiry(),
        request_timeout_seconds=get_request_timeout_seconds(),
    )
