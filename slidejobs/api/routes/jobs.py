from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from slidejobs.api.deps import JobServices, get_services
from slidejobs.api.models import JobCreateResponse, JobStatusResponse, RenderSettingsModel
from slidejobs.jobs.errors import JobError, JobNotFound, WatchCancelled
from slidejobs.jobs.models import InputFile, JobUpdate
from slidejobs.jobs.watcher import UpdateChannel

router = APIRouter()
logger = logging.getLogger(__name__)

_MEDIA_TYPES = {"pdf": "application/pdf", "html": "text/html; charset=utf-8"}
_SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


def _parse_render_settings(raw: str) -> RenderSettingsModel:
  try:
    return RenderSettingsModel.model_validate_json(raw or "{}")
  except ValidationError as exc:
    raise RequestValidationError(exc.errors()) from exc


@router.post("/generate", status_code=status.HTTP_202_ACCEPTED, response_model=JobCreateResponse)
async def generate_slides(  # noqa: B008
  files: Annotated[list[UploadFile], File(description="Source documents for the deck.")],
  theme: Annotated[str, Form()] = "default",
  settings: Annotated[str, Form(description="JSON encoded rendering settings.")] = "{}",
  services: JobServices = Depends(get_services),
) -> JobCreateResponse:
  """Queue a slide generation job and hand it to the worker."""
  render_settings = _parse_render_settings(settings)
  if not files:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one file is required.")

  limit = services.settings.max_upload_mb * 1024 * 1024
  inputs: list[InputFile] = []
  total = 0
  for upload in files:
    data = await upload.read()
    total += len(data)
    if total > limit:
      raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=f"Uploads exceed {services.settings.max_upload_mb} MB.")
    inputs.append(InputFile(filename=upload.filename or "upload", type=upload.content_type or "application/octet-stream", data=data))

  job = await services.producer.submit(theme, render_settings.model_dump(), inputs)
  return JobCreateResponse(job_id=job.id, status=job.status, message=job.message)


@router.get("/jobs/{job_id}", response_model=JobStatusResponse, response_model_exclude_none=True)
async def get_job_status(job_id: str, services: JobServices = Depends(get_services)) -> JobStatusResponse:  # noqa: B008
  """Return the current job view."""
  update = await services.producer.get_job(job_id)
  return JobStatusResponse.from_update(update)


def _sse_frame(update: JobUpdate) -> str:
  body = JobStatusResponse.from_update(update).model_dump(mode="json", by_alias=True, exclude_none=True)
  return f"data: {json.dumps(body)}\n\n"


def _sse_error(message: str) -> str:
  return f"event: error\ndata: {json.dumps({'error': message})}\n\n"


async def _stream_updates(first: JobUpdate, channel: UpdateChannel, task: asyncio.Task[None], cancel: asyncio.Event) -> AsyncIterator[str]:
  try:
    yield _sse_frame(first)
    async for update in channel:
      yield _sse_frame(update)
    try:
      await task
    except WatchCancelled:
      return
    except JobError as exc:
      yield _sse_error(exc.message)
    except Exception:
      logger.exception("Status stream for job %s failed", first.id)
      yield _sse_error("Internal Server Error")
  finally:
    # Releases the subscription when the client goes away mid-stream.
    cancel.set()


@router.get("/slides/{job_id}")
async def stream_job_status(job_id: str, services: JobServices = Depends(get_services)) -> StreamingResponse:  # noqa: B008
  """Stream job updates as Server-Sent Events until the job is terminal."""
  channel = UpdateChannel()
  cancel = asyncio.Event()
  task = asyncio.create_task(services.watcher.watch(job_id, channel, cancel))

  def _on_done(done: asyncio.Task[None]) -> None:
    channel.close_nowait()
    if not done.cancelled():
      done.exception()

  task.add_done_callback(_on_done)

  try:
    first = await anext(channel)
  except StopAsyncIteration:
    # The watch ended before its initial update, so surface its error.
    await task
    raise JobNotFound(f"Job {job_id} not found", job_id=job_id) from None
  except BaseException:
    cancel.set()
    raise

  return StreamingResponse(_stream_updates(first, channel, task, cancel), media_type="text/event-stream", headers=_SSE_HEADERS)


@router.get("/results/{job_id}")
async def get_slide_result(  # noqa: B008
  job_id: str,
  format: Annotated[Literal["pdf", "html"], Query(description="Artifact to return.")] = "pdf",
  services: JobServices = Depends(get_services),
) -> Response:
  """Return the rendered deck; 404 when missing and 410 once expired."""
  result = await services.producer.get_result(job_id)
  data = result.pdf_data if format == "pdf" else result.html_data
  headers = {"Content-Disposition": f'inline; filename="slides-{job_id}.{format}"'}
  return Response(content=data, media_type=_MEDIA_TYPES[format], headers=headers)
