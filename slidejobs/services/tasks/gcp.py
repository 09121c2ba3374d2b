from __future__ import annotations

import json
import logging

from google.api_core.exceptions import DeadlineExceeded, GoogleAPIError, RetryError, ServiceUnavailable
from google.cloud import tasks_v2
from starlette.concurrency import run_in_threadpool

from slidejobs.config import Settings
from slidejobs.jobs.errors import DispatchFailed, DispatchRejected, DispatchTransportFailed
from slidejobs.jobs.models import DispatchPayload
from slidejobs.services.tasks.interface import TASK_PATH, TASK_SECRET_HEADER, TaskDispatcher

logger = logging.getLogger(__name__)


class CloudTasksDispatcher(TaskDispatcher):
  """Dispatches jobs as HTTP tasks on a Google Cloud Tasks queue."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings
    self.client = tasks_v2.CloudTasksClient()

  def _build_task(self, payload: DispatchPayload) -> dict:
    headers = {"Content-Type": "application/json"}
    if self.settings.task_secret:
      headers[TASK_SECRET_HEADER] = self.settings.task_secret
    return {
      "http_request": {
        "http_method": tasks_v2.HttpMethod.POST,
        "url": f"{self.settings.worker_base_url.rstrip('/')}{TASK_PATH}",
        "headers": headers,
        "body": json.dumps(payload.to_payload()).encode(),
      }
    }

  async def dispatch(self, payload: DispatchPayload) -> None:
    """Create the task; the queue owns delivery from here on."""
    if not self.settings.cloud_tasks_queue_path:
      raise DispatchFailed("Cloud Tasks queue path not configured.", job_id=payload.job_id)
    if not self.settings.worker_base_url:
      raise DispatchFailed("SLIDES_SERVICE_URL not configured.", job_id=payload.job_id)

    request = {"parent": self.settings.cloud_tasks_queue_path, "task": self._build_task(payload)}
    try:
      response = await run_in_threadpool(self.client.create_task, request=request, timeout=self.settings.dispatch_timeout_seconds)
    except (DeadlineExceeded, ServiceUnavailable, RetryError) as e:
      logger.error("Cloud Tasks unreachable for job %s: %s", payload.job_id, e)
      raise DispatchTransportFailed(f"Error calling Cloud Tasks: {e}", job_id=payload.job_id) from e
    except GoogleAPIError as e:
      logger.error("Failed to enqueue task for job %s: %s", payload.job_id, e, exc_info=True)
      status_code = getattr(e, "code", None)
      if isinstance(status_code, int):
        raise DispatchRejected(f"Cloud Tasks rejected the task: {e}", job_id=payload.job_id, status_code=status_code, body=str(e)) from e
      raise DispatchTransportFailed(f"Error calling Cloud Tasks: {e}", job_id=payload.job_id) from e
    logger.info("Enqueued task %s for job %s", response.name, payload.job_id)
