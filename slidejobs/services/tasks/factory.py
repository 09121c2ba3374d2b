from __future__ import annotations

from slidejobs.config import Settings
from slidejobs.services.tasks.interface import TaskDispatcher


def get_task_dispatcher(settings: Settings) -> TaskDispatcher:
  """Factory to get the configured task dispatcher."""
  if settings.task_service_provider == "gcp":
    from slidejobs.services.tasks.gcp import CloudTasksDispatcher

    return CloudTasksDispatcher(settings)

  from slidejobs.services.tasks.local import LocalHttpDispatcher

  return LocalHttpDispatcher(settings)
