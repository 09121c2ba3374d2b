"""Process-wide service wiring for the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from slidejobs.config import Settings, get_settings
from slidejobs.jobs.lookup import JobLookup
from slidejobs.jobs.producer import JobProducer
from slidejobs.jobs.watcher import JobStatusWatcher
from slidejobs.jobs.worker import JobWorkerController
from slidejobs.services.renderer import ContentRenderer, load_renderer
from slidejobs.services.staging import FileStager, build_file_stager
from slidejobs.services.tasks.factory import get_task_dispatcher
from slidejobs.services.tasks.interface import TaskDispatcher
from slidejobs.storage.document_jobs_repo import DocumentJobsRepository, DocumentResultsRepository
from slidejobs.storage.documents import DocumentStore
from slidejobs.storage.factory import build_document_store
from slidejobs.storage.jobs_repo import JobsRepository, ResultsRepository


@dataclass(frozen=True)
class JobServices:
  """Everything the routes need to run the job lifecycle."""

  settings: Settings
  store: DocumentStore
  jobs: JobsRepository
  results: ResultsRepository
  stager: FileStager
  dispatcher: TaskDispatcher
  renderer: ContentRenderer
  lookup: JobLookup
  producer: JobProducer
  worker: JobWorkerController
  watcher: JobStatusWatcher


def build_services(
  settings: Settings,
  *,
  store: DocumentStore | None = None,
  stager: FileStager | None = None,
  dispatcher: TaskDispatcher | None = None,
  renderer: ContentRenderer | None = None,
) -> JobServices:
  """Assemble the service graph; any leaf capability can be swapped in."""
  store = store if store is not None else build_document_store(settings)
  stager = stager if stager is not None else build_file_stager(settings)
  dispatcher = dispatcher if dispatcher is not None else get_task_dispatcher(settings)
  renderer = renderer if renderer is not None else load_renderer(settings)

  jobs = DocumentJobsRepository(store)
  results = DocumentResultsRepository(store)
  lookup = JobLookup(jobs, results, processing_deadline_seconds=settings.processing_deadline_seconds)
  producer = JobProducer(jobs, stager, dispatcher, lookup)
  worker = JobWorkerController(jobs, results, stager, renderer, job_ttl_seconds=settings.job_ttl_seconds, result_ttl_seconds=settings.result_ttl_seconds)
  watcher = JobStatusWatcher(jobs, lookup)
  return JobServices(settings=settings, store=store, jobs=jobs, results=results, stager=stager, dispatcher=dispatcher, renderer=renderer, lookup=lookup, producer=producer, worker=worker, watcher=watcher)


@lru_cache(maxsize=1)
def get_services() -> JobServices:
  """Services shared by every request in this process."""
  return build_services(get_settings())
