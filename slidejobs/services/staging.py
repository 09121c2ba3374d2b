"""Job-scoped file staging shared between the producer and the worker."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import urlparse, urlunparse

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from slidejobs.config import Settings

logger = logging.getLogger(__name__)


class StagingError(Exception):
  """Raised when a staging backend cannot complete an operation."""


class FileStager(Protocol):
  """Capability for writing, reading and removing staged job files."""

  async def stage(self, job_id: str, filename: str, data: bytes) -> str:
    """Write bytes under the job scope and return the key to read them back."""

  async def read(self, key: str) -> bytes:
    """Return the bytes stored under a key."""

  async def delete(self, key: str) -> None:
    """Delete one staged file."""

  async def delete_job(self, job_id: str) -> None:
    """Delete everything staged for a job."""


def safe_filename(filename: str) -> str:
  """Reduce a client supplied name to a bare basename."""
  name = PurePosixPath(filename.replace("\\", "/")).name
  if name in {"", ".", ".."}:
    raise StagingError(f"Invalid filename: {filename!r}")
  return name


class LocalFileStager:
  """Stage files on a directory shared by the producer and worker hosts."""

  def __init__(self, root: str | os.PathLike[str]) -> None:
    self._root = Path(root)

  @property
  def root(self) -> Path:
    return self._root

  def _job_dir(self, job_id: str) -> Path:
    return self._root / safe_filename(job_id)

  def _resolve(self, key: str) -> Path:
    path = Path(key).resolve()
    if not path.is_relative_to(self._root.resolve()):
      raise StagingError(f"Refusing to touch {key}: outside the staging root")
    return path

  async def stage(self, job_id: str, filename: str, data: bytes) -> str:
    target = self._job_dir(job_id) / safe_filename(filename)

    def _write() -> None:
      target.parent.mkdir(parents=True, exist_ok=True)
      target.write_bytes(data)

    try:
      await run_in_threadpool(_write)
    except OSError as exc:
      raise StagingError(f"Failed to write {target}: {exc}") from exc
    return str(target)

  async def read(self, key: str) -> bytes:
    try:
      return await run_in_threadpool(self._resolve(key).read_bytes)
    except OSError as exc:
      raise StagingError(f"Failed to read {key}: {exc}") from exc

  async def delete(self, key: str) -> None:
    try:
      await run_in_threadpool(self._resolve(key).unlink, True)
    except OSError as exc:
      raise StagingError(f"Failed to delete {key}: {exc}") from exc

  async def delete_job(self, job_id: str) -> None:
    job_dir = self._job_dir(job_id)

    def _remove() -> None:
      if job_dir.exists():
        shutil.rmtree(job_dir)

    try:
      await run_in_threadpool(_remove)
    except OSError as exc:
      raise StagingError(f"Failed to remove {job_dir}: {exc}") from exc


class GcsFileStager:
  """Stage files as objects under a per-job prefix in a GCS bucket."""

  def __init__(self, settings: Settings) -> None:
    if not settings.staging_bucket:
      raise ValueError("SLIDEJOBS_STAGING_BUCKET is required for the gcs staging provider.")
    self._bucket_name = settings.staging_bucket
    self._storage_host = settings.gcs_storage_host
    if self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["GCS_STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    """Create the bucket when running against the emulator."""
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  def _blob(self, key: str) -> storage.Blob:
    return self._client.bucket(self._bucket_name).blob(key)

  async def stage(self, job_id: str, filename: str, data: bytes) -> str:
    key = f"{safe_filename(job_id)}/{safe_filename(filename)}"
    try:
      await run_in_threadpool(self._blob(key).upload_from_string, data)
    except GoogleAPIError as exc:
      raise StagingError(f"Failed to upload gs://{self._bucket_name}/{key}: {exc}") from exc
    return key

  async def read(self, key: str) -> bytes:
    try:
      return await run_in_threadpool(self._blob(key).download_as_bytes)
    except GoogleAPIError as exc:
      raise StagingError(f"Failed to download gs://{self._bucket_name}/{key}: {exc}") from exc

  async def delete(self, key: str) -> None:
    try:
      await run_in_threadpool(self._blob(key).delete)
    except NotFound:
      return
    except GoogleAPIError as exc:
      raise StagingError(f"Failed to delete gs://{self._bucket_name}/{key}: {exc}") from exc

  async def delete_job(self, job_id: str) -> None:
    prefix = f"{safe_filename(job_id)}/"

    def _delete_prefix() -> int:
      blobs = list(self._client.list_blobs(self._bucket_name, prefix=prefix))
      for blob in blobs:
        blob.delete()
      return len(blobs)

    try:
      removed = await run_in_threadpool(_delete_prefix)
    except GoogleAPIError as exc:
      raise StagingError(f"Failed to clear gs://{self._bucket_name}/{prefix}: {exc}") from exc
    logger.debug("Removed %d staged objects for job %s", removed, job_id)


def build_file_stager(settings: Settings) -> FileStager:
  """Create the configured staging backend."""
  if settings.staging_provider == "gcs":
    return GcsFileStager(settings)
  return LocalFileStager(settings.staging_dir)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
