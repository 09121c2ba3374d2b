from __future__ import annotations

from typing import Protocol

from slidejobs.jobs.models import DispatchPayload

TASK_PATH = "/tasks/process-slides"
TASK_SECRET_HEADER = "x-slidejobs-task-secret"


class TaskDispatcher(Protocol):
  """Interface for handing a staged job to the worker."""

  async def dispatch(self, payload: DispatchPayload) -> None:
    """Deliver the payload; raises DispatchFailed when the worker does not accept it."""
    ...
