"""Shared fixtures and in-memory doubles for the slidejobs test suite."""

from __future__ import annotations

import asyncio
import os
import tempfile
from dataclasses import replace
from pathlib import Path

# Ensure required settings are available before importing the app.
os.environ.setdefault("SLIDEJOBS_ALLOWED_ORIGINS", "http://localhost")
os.environ.setdefault("SLIDEJOBS_LOG_DIR", str(Path(tempfile.gettempdir()) / "slidejobs-test-logs"))
os.environ.setdefault("SLIDEJOBS_STAGING_DIR", str(Path(tempfile.gettempdir()) / "slidejobs-test-shared"))

import pytest  # noqa: E402

from slidejobs.config import Settings, get_settings  # noqa: E402
from slidejobs.jobs.lookup import JobLookup  # noqa: E402
from slidejobs.jobs.models import DispatchPayload, InputFile, RenderedArtifacts  # noqa: E402
from slidejobs.services.renderer import ProgressSink  # noqa: E402
from slidejobs.services.staging import LocalFileStager  # noqa: E402
from slidejobs.storage.document_jobs_repo import DocumentJobsRepository, DocumentResultsRepository  # noqa: E402
from slidejobs.storage.memory_documents import InMemoryDocumentStore  # noqa: E402

TASK_SECRET = "test-task-secret"
START = 1_700_000_000


@pytest.fixture
def anyio_backend():
  return "asyncio"


class FakeClock:
  """Settable epoch-seconds clock."""

  def __init__(self, now: int = START) -> None:
    self.now = now

  def __call__(self) -> int:
    return self.now

  def advance(self, seconds: int) -> None:
    self.now += seconds


class RecordingDispatcher:
  """Records dispatch payloads and optionally fails the handoff."""

  def __init__(self, error: Exception | None = None) -> None:
    self.payloads: list[DispatchPayload] = []
    self.error = error

  async def dispatch(self, payload: DispatchPayload) -> None:
    self.payloads.append(payload)
    if self.error is not None:
      raise self.error


class InProcessDispatcher:
  """Hands jobs straight to a worker controller, acking after the claim like the HTTP endpoint."""

  def __init__(self) -> None:
    self.worker = None
    self.tasks: list[asyncio.Task[None]] = []

  async def dispatch(self, payload: DispatchPayload) -> None:
    await self.worker.begin(payload)
    self.tasks.append(asyncio.create_task(self.worker.execute_in_background(payload)))

  async def drain(self) -> None:
    if self.tasks:
      await asyncio.gather(*self.tasks)


class ScriptedRenderer:
  """Renderer double that reports scripted progress and returns fixed artifacts."""

  def __init__(self, *, progress: tuple[str, ...] = (), artifacts: RenderedArtifacts | None = None, error: Exception | None = None, gate: asyncio.Event | None = None) -> None:
    self.progress = progress
    self.artifacts = artifacts or RenderedArtifacts(pdf=b"%PDF-1.7 slides", html=b"<html>slides</html>")
    self.error = error
    self.gate = gate
    self.calls: list[tuple[str, list[InputFile], dict]] = []

  async def render(self, theme: str, files: list[InputFile], settings: dict, report_progress: ProgressSink) -> RenderedArtifacts:
    self.calls.append((theme, list(files), dict(settings)))
    for message in self.progress:
      await report_progress(message)
    if self.gate is not None:
      await self.gate.wait()
    if self.error is not None:
      raise self.error
    return self.artifacts


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def store() -> InMemoryDocumentStore:
  return InMemoryDocumentStore()


@pytest.fixture
def jobs_repo(store, clock) -> DocumentJobsRepository:
  return DocumentJobsRepository(store, clock=clock)


@pytest.fixture
def results_repo(store) -> DocumentResultsRepository:
  return DocumentResultsRepository(store)


@pytest.fixture
def stager(tmp_path) -> LocalFileStager:
  return LocalFileStager(tmp_path / "shared")


@pytest.fixture
def lookup(jobs_repo, results_repo, clock) -> JobLookup:
  return JobLookup(jobs_repo, results_repo, processing_deadline_seconds=1800, clock=clock)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
  # Bypass the process cache so each test starts from the environment.
  return replace(get_settings.__wrapped__(), task_secret=TASK_SECRET, staging_dir=str(tmp_path / "shared"), worker_base_url="http://slides.internal")


def sample_files() -> list[InputFile]:
  return [InputFile(filename="notes.txt", type="text/plain", data=b"chapter one")]


def scripted_renderer_factory(settings: Settings) -> ScriptedRenderer:
  """Renderer factory addressable as ``conftest:scripted_renderer_factory``."""
  return ScriptedRenderer(progress=(f"Rendering for {settings.environment}",))
