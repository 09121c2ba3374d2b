from __future__ import annotations

import asyncio
import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from slidejobs.api.deps import JobServices, get_services
from slidejobs.api.models import DispatchRequest, TaskAck
from slidejobs.jobs.models import DispatchPayload

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)


def _authorize(task_secret: str | None, shared_secret: str | None, authorization: str | None) -> None:
  # Deny by default: without a configured secret the worker accepts nothing.
  if not task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  shared_secret_valid = secrets.compare_digest(shared_secret or "", task_secret)
  bearer_valid = secrets.compare_digest(authorization or "", f"Bearer {task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to /tasks/process-slides")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


def _log_render_task_failure(task: asyncio.Task[None]) -> None:
  if task.cancelled():
    return
  exc = task.exception()
  if exc is not None:
    logger.error("Background render task crashed", exc_info=(type(exc), exc, exc.__traceback__))


def _schedule_render(request: Request, services: JobServices, dispatch: DispatchPayload) -> None:
  # Detached from the response; the ack never waits for the render.
  render_tasks: set[asyncio.Task[None]] = request.app.state.render_tasks
  task = asyncio.get_running_loop().create_task(services.worker.execute_in_background(dispatch))
  render_tasks.add(task)
  task.add_done_callback(render_tasks.discard)
  task.add_done_callback(_log_render_task_failure)


@router.post("/process-slides", status_code=status.HTTP_202_ACCEPTED, response_model=TaskAck)
async def process_slides_task(  # noqa: B008
  payload: DispatchRequest,
  request: Request,
  services: JobServices = Depends(get_services),
  authorization: str | None = Header(default=None),
  x_slidejobs_task_secret: str | None = Header(default=None),
) -> TaskAck:
  """
  Worker ingestion endpoint for dispatched jobs.
  Claims the job synchronously, so a duplicate dispatch gets 409, then renders in the background.
  """
  _authorize(services.settings.task_secret, x_slidejobs_task_secret, authorization)

  dispatch = payload.to_payload()
  logger.info("Received task for job %s with %d files", dispatch.job_id, len(dispatch.files))
  await services.worker.begin(dispatch)
  _schedule_render(request, services, dispatch)
  return TaskAck(job_id=dispatch.job_id)
