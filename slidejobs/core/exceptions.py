import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from slidejobs.jobs.errors import DispatchFailed, InvalidTransition, JobError, JobNotFound, ResultExpired, ResultNotFound, WatchCancelled

logger = logging.getLogger("uvicorn.error")


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None, job_id: str | None = None) -> dict[str, Any]:
  """Build an error body; the request id lets support correlate it with server logs."""
  payload: dict[str, Any] = {"detail": detail}
  if job_id:
    payload["jobId"] = job_id
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx
    sanitized.append(_coerce_json_safe(scrubbed))
  return sanitized


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors without leaking payloads."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle HTTPExceptions while hiding 5xx diagnostics from callers."""
  from slidejobs.config import get_settings

  settings = get_settings()
  request_id = _request_id(request)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id), headers=exc.headers)

  if settings.log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=exc.headers)


def _job_error_status(exc: JobError) -> int:
  if isinstance(exc, JobNotFound | ResultNotFound):
    return status.HTTP_404_NOT_FOUND
  if isinstance(exc, ResultExpired):
    return status.HTTP_410_GONE
  if isinstance(exc, InvalidTransition):
    return status.HTTP_409_CONFLICT
  if isinstance(exc, DispatchFailed):
    return status.HTTP_502_BAD_GATEWAY
  if isinstance(exc, WatchCancelled):
    return 499
  return status.HTTP_500_INTERNAL_SERVER_ERROR


async def job_exception_handler(request: Request, exc: JobError) -> JSONResponse:
  """Map the job error taxonomy onto HTTP responses."""
  request_id = _request_id(request)
  status_code = _job_error_status(exc)
  if status_code >= 500:
    logger.error("Job failure request_id=%s path=%s job_id=%s error_type=%s detail=%s", request_id, request.url.path, exc.job_id, type(exc).__name__, exc.message)
    # Only dispatch failures expose their detail.
    detail = exc.message if isinstance(exc, DispatchFailed) else "Internal Server Error"
    return JSONResponse(status_code=status_code, content=_error_payload(detail, request_id=request_id, job_id=exc.job_id))

  logger.info("Job request rejected request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, status_code, exc.message)
  return JSONResponse(status_code=status_code, content=_error_payload(exc.message, request_id=request_id, job_id=exc.job_id))
