"""Content renderer capability and its runtime wiring."""

from __future__ import annotations

import importlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from slidejobs.config import Settings
from slidejobs.jobs.errors import RenderFailed
from slidejobs.jobs.models import InputFile, RenderedArtifacts

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str], Awaitable[None]]


class ContentRenderer(Protocol):
  """Turns a theme, source files and settings into slide artifacts."""

  async def render(self, theme: str, files: list[InputFile], settings: dict[str, Any], report_progress: ProgressSink) -> RenderedArtifacts:
    """Render the deck, reporting progress messages along the way."""


class UnconfiguredRenderer:
  """Placeholder used when no renderer factory is configured."""

  async def render(self, theme: str, files: list[InputFile], settings: dict[str, Any], report_progress: ProgressSink) -> RenderedArtifacts:
    raise RenderFailed("No content renderer configured; set SLIDEJOBS_RENDERER to a module:callable factory")


def load_renderer(settings: Settings) -> ContentRenderer:
  """Import the renderer factory named by settings and build the renderer.

  The factory path uses the ``package.module:callable`` form and the callable
  receives the settings object.
  """

  target = settings.renderer_factory
  if not target:
    logger.warning("SLIDEJOBS_RENDERER is not set; every job will fail at the render step")
    return UnconfiguredRenderer()

  module_name, sep, attr = target.partition(":")
  if not sep or not module_name or not attr:
    raise ValueError("SLIDEJOBS_RENDERER must look like 'package.module:factory'.")

  module = importlib.import_module(module_name)
  factory = getattr(module, attr)
  renderer = factory(settings)
  logger.info("Loaded content renderer from %s", target)
  return renderer
