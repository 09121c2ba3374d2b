import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from slidejobs.core.logging import _initialize_logging
from slidejobs.services.staging import GcsFileStager, LocalFileStager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and the staging area before serving requests."""
  from slidejobs.api.deps import get_services
  from slidejobs.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("slidejobs.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except RuntimeError:
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  services = app.dependency_overrides.get(get_services, get_services)()
  stager = services.stager
  if isinstance(stager, LocalFileStager):
    try:
      stager.root.mkdir(parents=True, exist_ok=True)
      logger.info("Staging files under %s", stager.root)
    except OSError as exc:
      logger.warning("Failed to create staging directory %s: %s", stager.root, exc)
  elif isinstance(stager, GcsFileStager):
    try:
      await stager.ensure_bucket()
      logger.info("Staging bucket ensured: %s", stager.bucket_name)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to ensure staging bucket at startup: %s", exc)

  logger.info("Serving with document store=%s staging=%s dispatch=%s", settings.document_store_provider, settings.staging_provider, settings.task_service_provider)
  yield

  render_tasks = getattr(app.state, "render_tasks", set())
  if render_tasks:
    # Interrupted jobs stay processing until the deadline fails them.
    logger.info("Cancelling %d in-flight renders on shutdown.", len(render_tasks))
    for task in list(render_tasks):
      task.cancel()
