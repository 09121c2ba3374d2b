"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from slidejobs.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_DOCUMENT_STORES = {"memory", "firestore"}
_STAGING_PROVIDERS = {"local", "gcs"}
_TASK_PROVIDERS = {"local-http", "gcp"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the slide job service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  document_store_provider: str
  gcp_project_id: str | None
  firestore_emulator_host: str | None
  firebase_service_account_json_path: str | None
  staging_provider: str
  staging_dir: str
  staging_bucket: str | None
  gcs_storage_host: str | None
  task_service_provider: str
  worker_base_url: str | None
  cloud_tasks_queue_path: str | None
  task_secret: str | None
  dispatch_timeout_seconds: float
  job_ttl_seconds: int
  result_ttl_seconds: int
  processing_deadline_seconds: int
  max_upload_mb: int
  renderer_factory: str | None


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("SLIDEJOBS_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("SLIDEJOBS_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _choice(name: str, default: str, allowed: set[str]) -> str:
  value = (os.getenv(name) or default).strip().lower()
  if value not in allowed:
    raise ValueError(f"{name} must be one of: {', '.join(sorted(allowed))}.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("SLIDEJOBS_ENV", "development").lower()
  debug = _parse_bool(os.getenv("SLIDEJOBS_DEBUG"))

  log_backup_count = int(os.getenv("SLIDEJOBS_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("SLIDEJOBS_LOG_BACKUP_COUNT must be zero or a positive integer.")

  document_store_provider = _choice("SLIDEJOBS_DOCUMENT_STORE", "memory", _DOCUMENT_STORES)
  staging_provider = _choice("SLIDEJOBS_STAGING_PROVIDER", "local", _STAGING_PROVIDERS)
  task_service_provider = _choice("SLIDEJOBS_TASK_SERVICE_PROVIDER", "local-http", _TASK_PROVIDERS)

  staging_bucket = _optional_str(os.getenv("SLIDEJOBS_STAGING_BUCKET"))
  if staging_provider == "gcs" and not staging_bucket:
    raise ValueError("SLIDEJOBS_STAGING_BUCKET must be set when SLIDEJOBS_STAGING_PROVIDER is 'gcs'.")

  gcp_project_id = _optional_str(os.getenv("GOOGLE_CLOUD_PROJECT"))
  if document_store_provider == "firestore" and not gcp_project_id:
    raise ValueError("GOOGLE_CLOUD_PROJECT must be set when SLIDEJOBS_DOCUMENT_STORE is 'firestore'.")

  dispatch_timeout_seconds = float(os.getenv("SLIDEJOBS_DISPATCH_TIMEOUT_SECONDS", "30"))
  if dispatch_timeout_seconds <= 0:
    raise ValueError("SLIDEJOBS_DISPATCH_TIMEOUT_SECONDS must be positive.")

  # Zero turns the stuck-job deadline off.
  processing_deadline_seconds = int(os.getenv("SLIDEJOBS_PROCESSING_DEADLINE_SECONDS", "1800"))
  if processing_deadline_seconds < 0:
    raise ValueError("SLIDEJOBS_PROCESSING_DEADLINE_SECONDS must be zero or a positive integer.")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("SLIDEJOBS_ALLOWED_ORIGINS")),
    log_dir=os.getenv("SLIDEJOBS_LOG_DIR", "./logs").strip(),
    log_max_bytes=_positive_int("SLIDEJOBS_LOG_MAX_BYTES", "5242880"),
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("SLIDEJOBS_LOG_HTTP_4XX")),
    document_store_provider=document_store_provider,
    gcp_project_id=gcp_project_id,
    firestore_emulator_host=_optional_str(os.getenv("FIRESTORE_EMULATOR_HOST")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    staging_provider=staging_provider,
    staging_dir=os.getenv("SLIDEJOBS_STAGING_DIR", "/shared").strip(),
    staging_bucket=staging_bucket,
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    task_service_provider=task_service_provider,
    worker_base_url=_optional_str(os.getenv("SLIDES_SERVICE_URL")),
    cloud_tasks_queue_path=_optional_str(os.getenv("SLIDEJOBS_CLOUD_TASKS_QUEUE_PATH")),
    task_secret=_optional_str(os.getenv("SLIDEJOBS_TASK_SECRET")),
    dispatch_timeout_seconds=dispatch_timeout_seconds,
    job_ttl_seconds=_positive_int("SLIDEJOBS_JOB_TTL_SECONDS", "300"),
    result_ttl_seconds=_positive_int("SLIDEJOBS_RESULT_TTL_SECONDS", "3600"),
    processing_deadline_seconds=processing_deadline_seconds,
    max_upload_mb=_positive_int("SLIDEJOBS_MAX_UPLOAD_MB", "50"),
    renderer_factory=_optional_str(os.getenv("SLIDEJOBS_RENDERER")),
  )
