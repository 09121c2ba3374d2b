from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse

import httpx

from slidejobs.config import Settings
from slidejobs.jobs.errors import DispatchFailed, DispatchRejected, DispatchTransportFailed
from slidejobs.jobs.models import DispatchPayload
from slidejobs.services.tasks.interface import TASK_PATH, TASK_SECRET_HEADER, TaskDispatcher

logger = logging.getLogger(__name__)


class LocalHttpDispatcher(TaskDispatcher):
  """Dispatches jobs with a direct HTTP call to the worker service."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings

  def _should_use_asgi_transport(self, base_url: str) -> bool:
    """Decide if we should route requests in-process via ASGITransport."""
    parsed = urlparse(base_url)
    hostname = (parsed.hostname or "").lower()
    return hostname in {"localhost", "127.0.0.1", "::1", "0.0.0.0"}

  def _build_client(self, base_url: str) -> httpx.AsyncClient:
    """Build an httpx client for task dispatch."""
    # Never trust environment proxy variables for internal task dispatch.
    timeout = httpx.Timeout(self.settings.dispatch_timeout_seconds)
    if self._should_use_asgi_transport(base_url):
      from slidejobs.main import app

      transport = httpx.ASGITransport(app=app)
      return httpx.AsyncClient(transport=transport, base_url=base_url, trust_env=False, timeout=timeout)
    return httpx.AsyncClient(trust_env=False, timeout=timeout)

  def _task_headers(self, job_id: str) -> dict[str, str]:
    if not self.settings.task_secret:
      raise DispatchFailed("Task secret not configured.", job_id=job_id)
    return {TASK_SECRET_HEADER: self.settings.task_secret}

  async def dispatch(self, payload: DispatchPayload) -> None:
    """POST the payload to the worker endpoint and require a 2xx answer."""
    base_url = self.settings.worker_base_url
    if not base_url:
      raise DispatchFailed("SLIDES_SERVICE_URL not configured, strictly required for LocalHttpDispatcher.", job_id=payload.job_id)

    url = f"{base_url.rstrip('/')}{TASK_PATH}"
    headers = self._task_headers(payload.job_id)

    try:
      async with self._build_client(base_url) as client:
        logger.info("Dispatching job %s to %s", payload.job_id, url)
        # ASGITransport does not enforce httpx timeouts.
        response = await asyncio.wait_for(client.post(url, json=payload.to_payload(), headers=headers), timeout=self.settings.dispatch_timeout_seconds)
        response.raise_for_status()

    except httpx.HTTPStatusError as e:
      body = e.response.text
      logger.error("Task dispatch returned %s for job %s: %s", e.response.status_code, payload.job_id, body)
      raise DispatchRejected(f"Slides service returned error: {e.response.status_code} - {body}", job_id=payload.job_id, status_code=e.response.status_code, body=body) from e
    except httpx.RequestError as e:
      logger.error("Failed to dispatch job %s: %s", payload.job_id, e)
      raise DispatchTransportFailed(f"Error calling slides service: {e}", job_id=payload.job_id) from e
    except TimeoutError as e:
      logger.error("Task dispatch for job %s timed out after %ss", payload.job_id, self.settings.dispatch_timeout_seconds)
      raise DispatchTransportFailed(f"Error calling slides service: timed out after {self.settings.dispatch_timeout_seconds}s", job_id=payload.job_id) from e
