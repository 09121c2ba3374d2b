from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictStr

from slidejobs.jobs.models import DispatchPayload, FileReference, JobUpdate
from slidejobs.jobs.state import JobStatus


class RenderSettingsModel(BaseModel):
  """Rendering options chosen by the client."""

  detail: Literal["minimal", "medium", "detailed"] = Field(default="medium", validation_alias=AliasChoices("detail", "slideDetail"), description="How much content each slide carries.")
  audience: Literal["general", "academic", "technical", "professional", "executive"] = Field(default="general", description="Who the deck is written for.")
  model_config = ConfigDict(extra="forbid", populate_by_name=True)


class JobCreateResponse(BaseModel):
  """Response returned once a job is queued and handed off."""

  job_id: str = Field(serialization_alias="jobId")
  status: JobStatus
  message: str


class JobStatusResponse(BaseModel):
  """One job update as returned by the status endpoints and stream."""

  id: str
  status: JobStatus
  message: str
  result_url: str | None = Field(default=None, serialization_alias="resultUrl")
  updated_at: int = Field(serialization_alias="updatedAt")

  @classmethod
  def from_update(cls, update: JobUpdate) -> JobStatusResponse:
    return cls(id=update.id, status=update.status, message=update.message, result_url=update.result_url or None, updated_at=update.updated_at)


class FileReferenceModel(BaseModel):
  filename: StrictStr = Field(min_length=1)
  type: StrictStr = ""
  local_path: StrictStr = Field(min_length=1, alias="localPath")
  model_config = ConfigDict(populate_by_name=True)


class DispatchRequest(BaseModel):
  """Body of the worker ingestion call."""

  job_id: StrictStr = Field(min_length=1, alias="jobID")
  theme: StrictStr = ""
  files: list[FileReferenceModel] = Field(default_factory=list)
  settings: dict[str, Any] = Field(default_factory=dict)
  model_config = ConfigDict(populate_by_name=True)

  def to_payload(self) -> DispatchPayload:
    refs = [FileReference(filename=item.filename, type=item.type, local_path=item.local_path) for item in self.files]
    return DispatchPayload(job_id=self.job_id, theme=self.theme, files=refs, settings=dict(self.settings))


class TaskAck(BaseModel):
  status: Literal["accepted"] = "accepted"
  job_id: str = Field(serialization_alias="jobID")
