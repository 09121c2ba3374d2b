from __future__ import annotations

import os

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from slidejobs import __version__
from slidejobs.api.routes import jobs, tasks
from slidejobs.config import get_settings
from slidejobs.core.exceptions import global_exception_handler, http_exception_handler, job_exception_handler, request_validation_exception_handler
from slidejobs.core.lifespan import lifespan
from slidejobs.core.middleware import RequestLoggingMiddleware
from slidejobs.jobs.errors import JobError

settings = get_settings()

app = FastAPI(title="slidejobs", version=__version__, lifespan=lifespan)
# Renders started by the worker endpoint; entries drop out when they finish.
app.state.render_tasks = set()

app.add_middleware(
  CORSMiddleware,
  allow_origins=list(settings.allowed_origins),
  allow_credentials=True,
  allow_methods=["GET", "POST", "OPTIONS"],
  allow_headers=["content-type", "authorization", "cache-control", "x-request-id"],
  expose_headers=["content-length", "content-type", "x-request-id"],
)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(JobError, job_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": __version__}


app.include_router(jobs.router, prefix="/v1", tags=["jobs"])
app.include_router(tasks.router)


def run() -> None:
  """Run the service under uvicorn."""
  import uvicorn

  host = os.getenv("HOST", "0.0.0.0")
  port = int(os.getenv("PORT", "8080"))
  reload = os.getenv("RELOAD", "").strip().lower() in {"1", "true", "yes", "on"}
  uvicorn.run("slidejobs.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
  run()
