from __future__ import annotations

import asyncio
import json
from dataclasses import replace

import pytest
from conftest import InProcessDispatcher, RecordingDispatcher, ScriptedRenderer
from httpx import ASGITransport, AsyncClient

from slidejobs.api.deps import build_services, get_services
from slidejobs.jobs.errors import DispatchRejected
from slidejobs.jobs.models import RESULTS_COLLECTION
from slidejobs.main import app
from slidejobs.storage.memory_documents import InMemoryDocumentStore

_UPLOAD = [("files", ("notes.txt", b"chapter one", "text/plain")), ("files", ("outline.md", b"# Outline", "text/markdown"))]


def _frames(body: str) -> list[tuple[str, dict]]:
  """Split an SSE body into (event, data) pairs."""
  frames = []
  for chunk in body.strip().split("\n\n"):
    event = "message"
    data = None
    for line in chunk.splitlines():
      if line.startswith("event: "):
        event = line[len("event: ") :]
      elif line.startswith("data: "):
        data = json.loads(line[len("data: ") :])
    frames.append((event, data))
  return frames


@pytest.fixture
def wired(test_settings, stager):
  """Install an in-memory service graph with the worker running in-process."""

  def _install(*, dispatcher=None, renderer=None, settings=None):
    dispatcher = dispatcher or InProcessDispatcher()
    services = build_services(settings or test_settings, store=InMemoryDocumentStore(), stager=stager, dispatcher=dispatcher, renderer=renderer or ScriptedRenderer())
    if isinstance(dispatcher, InProcessDispatcher):
      dispatcher.worker = services.worker
    app.dependency_overrides[get_services] = lambda: services
    return services

  yield _install
  app.dependency_overrides.pop(get_services, None)


@pytest.mark.anyio
async def test_generate_stream_and_download(wired, stager) -> None:
  gate = asyncio.Event()
  renderer = ScriptedRenderer(progress=("Analyzing documents", "Rendering slides"), gate=gate)
  services = wired(renderer=renderer)

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
    create = await ac.post("/v1/generate", files=_UPLOAD, data={"theme": "midnight", "settings": json.dumps({"slideDetail": "detailed", "audience": "technical"})})
    assert create.status_code == 202
    body = create.json()
    assert body["status"] == "queued"
    assert body["message"] == "Job added to queue"
    job_id = body["jobId"]

    # The stream stays open while the renderer is held at the gate.
    stream = asyncio.create_task(ac.get(f"/v1/slides/{job_id}"))
    await asyncio.sleep(0.05)
    assert not stream.done()
    gate.set()
    response = await asyncio.wait_for(stream, timeout=5)
    await services.dispatcher.drain()

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    frames = _frames(response.text)
    assert all(event == "message" for event, _ in frames)
    statuses = [data["status"] for _, data in frames]
    assert statuses[-1] == "completed"
    assert set(statuses[:-1]) <= {"queued", "processing"}
    assert frames[-1][1]["resultUrl"] == f"/results/{job_id}"
    assert frames[-1][1]["message"] == "Slides generated successfully"

    view = await ac.get(f"/v1/jobs/{job_id}")
    assert view.json()["status"] == "completed"
    assert view.json()["resultUrl"] == f"/results/{job_id}"

    pdf = await ac.get(f"/v1/results/{job_id}")
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content == b"%PDF-1.7 slides"
    html = await ac.get(f"/v1/results/{job_id}", params={"format": "html"})
    assert html.text == "<html>slides</html>"

  theme, files, settings = renderer.calls[0]
  assert theme == "midnight"
  assert [f.filename for f in files] == ["notes.txt", "outline.md"]
  assert settings == {"detail": "detailed", "audience": "technical"}
  assert not (stager.root / job_id).exists()


@pytest.mark.anyio
async def test_dispatch_failure_returns_bad_gateway_and_fails_job(wired) -> None:
  wired(dispatcher=RecordingDispatcher(error=DispatchRejected("Slides service returned error: 500 - renderer offline", status_code=500, body="renderer offline")))

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
    create = await ac.post("/v1/generate", files=_UPLOAD)
    assert create.status_code == 502
    job_id = create.json()["jobId"]
    assert "renderer offline" in create.json()["detail"]

    view = await ac.get(f"/v1/jobs/{job_id}")
    assert view.json()["status"] == "failed"
    assert view.json()["message"].startswith("Failed to trigger slides service")
    assert "resultUrl" not in view.json()

    stream = await ac.get(f"/v1/slides/{job_id}")
    assert [data["status"] for _, data in _frames(stream.text)] == ["failed"]

    result = await ac.get(f"/v1/results/{job_id}")
    assert result.status_code == 404


@pytest.mark.anyio
async def test_render_failure_is_streamed_as_failed(wired) -> None:
  services = wired(renderer=ScriptedRenderer(error=RuntimeError("template missing")))

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
    job_id = (await ac.post("/v1/generate", files=_UPLOAD)).json()["jobId"]
    await services.dispatcher.drain()

    frames = _frames((await ac.get(f"/v1/slides/{job_id}")).text)
    assert frames[-1][1]["status"] == "failed"
    assert frames[-1][1]["message"] == "Failed to generate slides: template missing"


@pytest.mark.anyio
async def test_expired_result_is_gone_then_not_found(wired) -> None:
  services = wired()

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
    job_id = (await ac.post("/v1/generate", files=_UPLOAD)).json()["jobId"]
    await services.dispatcher.drain()
    await services.store.update(RESULTS_COLLECTION, job_id, {"expiresAt": 1})

    first = await ac.get(f"/v1/results/{job_id}")
    second = await ac.get(f"/v1/results/{job_id}")
    view = await ac.get(f"/v1/jobs/{job_id}")

  assert first.status_code == 410
  assert first.json()["jobId"] == job_id
  assert "requestId" in first.json()
  assert second.status_code == 404
  assert view.json()["status"] == "completed"
  assert "resultUrl" not in view.json()


@pytest.mark.anyio
async def test_unknown_job_is_not_found_everywhere(wired) -> None:
  wired()

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
    status = await ac.get("/v1/jobs/ghost")
    stream = await ac.get("/v1/slides/ghost")
    result = await ac.get("/v1/results/ghost")

  assert status.status_code == 404
  assert stream.status_code == 404
  assert result.status_code == 404


@pytest.mark.anyio
async def test_generate_rejects_bad_requests(wired, test_settings) -> None:
  wired(settings=replace(test_settings, max_upload_mb=1))

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
    no_files = await ac.post("/v1/generate", data={"theme": "default"})
    bad_settings = await ac.post("/v1/generate", files=_UPLOAD, data={"settings": json.dumps({"detail": "exhaustive"})})
    unknown_setting = await ac.post("/v1/generate", files=_UPLOAD, data={"settings": json.dumps({"fontSize": 12})})
    too_big = await ac.post("/v1/generate", files=[("files", ("huge.bin", b"x" * (2 * 1024 * 1024), "application/octet-stream"))])
    bad_format = await ac.get("/v1/results/ghost", params={"format": "docx"})

  assert no_files.status_code == 422
  assert bad_settings.status_code == 422
  assert unknown_setting.status_code == 422
  assert too_big.status_code == 413
  assert bad_format.status_code == 422


@pytest.mark.anyio
async def test_health() -> None:
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
    response = await ac.get("/health")

  assert response.status_code == 200
  assert response.json()["status"] == "ok"
