"""Domain models for slide generation jobs and their stored results."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from slidejobs.jobs.state import JobStatus, parse_status

JOBS_COLLECTION = "jobs"
RESULTS_COLLECTION = "results"


def now_epoch() -> int:
  """Return the current time in whole seconds since the epoch."""
  return int(time.time())


def _is_past(expires_at: int | None, now: int) -> bool:
  # Absent or zero means the record does not expire.
  return bool(expires_at) and now > int(expires_at)


@dataclass
class JobRecord:
  """Durable job record, one per job id."""

  id: str
  status: JobStatus
  message: str
  created_at: int
  updated_at: int
  expires_at: int | None = None

  def is_expired(self, now: int) -> bool:
    return _is_past(self.expires_at, now)

  def to_document(self) -> dict[str, Any]:
    document: dict[str, Any] = {"id": self.id, "status": self.status.value, "message": self.message, "createdAt": self.created_at, "updatedAt": self.updated_at}
    if self.expires_at:
      document["expiresAt"] = self.expires_at
    return document

  @classmethod
  def from_document(cls, data: dict[str, Any]) -> JobRecord:
    return cls(
      id=str(data["id"]),
      status=parse_status(data["status"]),
      message=str(data.get("message") or ""),
      created_at=int(data.get("createdAt") or 0),
      updated_at=int(data.get("updatedAt") or 0),
      expires_at=int(data["expiresAt"]) if data.get("expiresAt") else None,
    )


@dataclass
class ResultRecord:
  """Stored artifacts for a completed job."""

  id: str
  result_url: str
  pdf_data: bytes
  html_data: bytes
  created_at: int
  expires_at: int

  def is_expired(self, now: int) -> bool:
    return _is_past(self.expires_at, now)

  def to_document(self) -> dict[str, Any]:
    return {"id": self.id, "resultUrl": self.result_url, "pdfData": self.pdf_data, "htmlData": self.html_data, "createdAt": self.created_at, "expiresAt": self.expires_at}

  @classmethod
  def from_document(cls, data: dict[str, Any]) -> ResultRecord:
    return cls(
      id=str(data["id"]),
      result_url=str(data.get("resultUrl") or ""),
      pdf_data=bytes(data.get("pdfData") or b""),
      html_data=bytes(data.get("htmlData") or b""),
      created_at=int(data.get("createdAt") or 0),
      expires_at=int(data.get("expiresAt") or 0),
    )


@dataclass(frozen=True)
class InputFile:
  """One submitted file with its raw bytes."""

  filename: str
  type: str
  data: bytes


@dataclass(frozen=True)
class FileReference:
  """Locates a staged file; never carries the bytes."""

  filename: str
  type: str
  local_path: str

  def to_payload(self) -> dict[str, str]:
    return {"filename": self.filename, "type": self.type, "localPath": self.local_path}

  @classmethod
  def from_payload(cls, data: dict[str, Any]) -> FileReference:
    return cls(filename=str(data["filename"]), type=str(data.get("type") or ""), local_path=str(data["localPath"]))


@dataclass(frozen=True)
class DispatchPayload:
  """Body of the producer -> worker handoff call."""

  job_id: str
  theme: str
  files: list[FileReference]
  settings: dict[str, Any]

  def to_payload(self) -> dict[str, Any]:
    return {"jobID": self.job_id, "theme": self.theme, "files": [ref.to_payload() for ref in self.files], "settings": dict(self.settings)}

  @classmethod
  def from_payload(cls, data: dict[str, Any]) -> DispatchPayload:
    return cls(job_id=str(data["jobID"]), theme=str(data.get("theme") or ""), files=[FileReference.from_payload(item) for item in data.get("files") or []], settings=dict(data.get("settings") or {}))


@dataclass
class PendingJob:
  """Producer-side view of a job while it is being created and handed off."""

  id: str
  theme: str
  settings: dict[str, Any]
  files: list[InputFile]
  status: JobStatus
  message: str
  created_at: int
  updated_at: int
  file_refs: list[FileReference] = field(default_factory=list)


@dataclass(frozen=True)
class JobUpdate:
  """One status observation delivered to a watcher."""

  id: str
  status: JobStatus
  message: str
  updated_at: int
  result_url: str = ""

  def to_payload(self) -> dict[str, Any]:
    payload: dict[str, Any] = {"id": self.id, "status": self.status.value, "message": self.message, "updatedAt": self.updated_at}
    if self.result_url:
      payload["resultUrl"] = self.result_url
    return payload

  @classmethod
  def from_record(cls, record: JobRecord, result_url: str = "") -> JobUpdate:
    return cls(id=record.id, status=record.status, message=record.message, updated_at=record.updated_at, result_url=result_url)


@dataclass(frozen=True)
class RenderedArtifacts:
  """Output of the content renderer."""

  pdf: bytes
  html: bytes


def result_url_for(job_id: str) -> str:
  """Return the retrieval path stored with a job's result."""
  return f"/results/{job_id}"
