"""
Shared fixtures: a scripted fake of PiAPI and sync.so behind httpx.MockTransport,
plus a store whose frame/download strategies never touch ffmpeg or the network.
"""

import base64
import json
import os

import httpx
import pytest
from PIL import Image

from ugc_workers import metrics
from ugc_workers.config import PollPolicy, Settings
from ugc_workers.piapi import PiAPIClient
from ugc_workers.pipeline.orchestrator import PipelineStageRunner
from ugc_workers.pipeline.storage import ArtifactStore
from ugc_workers.pipeline.strategies import Strategy
from ugc_workers.syncso import SyncSoClient

PIAPI_BASE = "https://api.piapi.test/api/v1"
PIAPI_UPLOAD = "https://upload.piapi.test/ephemeral"
SYNC_BASE = "https://api.sync.test/v2"
STORAGE_HOST = "img.theapi.app"


class FakeProviders:
    """
    In-memory PiAPI + sync.so.

    Each submitted task plays a script of poll steps, one per status fetch
    (the last step repeats):

      "queued" / "running"  → non-terminal status
      "done"                → completed, output points at a downloadable file
      ("fail", reason)      → failed with `reason`
      dict                  → returned verbatim as the task record
      int                   → HTTP error with that status code
      Exception             → raised from the transport
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.tasks: dict[str, dict] = {}
        self.scripts: list[list] = []
        self.uploads: list[str] = []
        self.files: dict[str, bytes] = {}
        self.upload_status = 200
        self.submit_status = 200
        self._counter = 0

    def script_next(self, *steps):
        self.scripts.append(list(steps))

    def submitted(self, model=None) -> list[dict]:
        return [
            t["payload"] for t in self.tasks.values()
            if model is None or t["payload"].get("model") == model
        ]

    def status_fetches(self, task_id: str) -> int:
        return self.tasks[task_id]["fetches"]

    # ── Transport ────────────────────────────────────────────────────────

    def handler(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        url = str(request.url).split("?", 1)[0]

        if request.method == "POST" and url == f"{PIAPI_BASE}/task":
            return self._submit_piapi(request)
        if request.method == "GET" and url.startswith(f"{PIAPI_BASE}/task/"):
            return self._status(url.rsplit("/", 1)[1], self._piapi_record)
        if request.method == "POST" and url == PIAPI_UPLOAD:
            return self._upload(request)
        if request.method == "POST" and url == f"{SYNC_BASE}/generate":
            return self._submit_sync(request)
        if request.method == "GET" and url.startswith(f"{SYNC_BASE}/generate/"):
            return self._status(url.rsplit("/", 1)[1], self._sync_record)
        if request.method == "GET" and url in self.files:
            return httpx.Response(200, content=self.files[url])
        return httpx.Response(404, text="not found")

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    def _register(self, task_id: str, payload: dict, extension: str):
        output_url = f"https://{STORAGE_HOST}/out/{task_id}{extension}"
        self.files[output_url] = f"result of {task_id}".encode()
        script = self.scripts.pop(0) if self.scripts else ["running", "done"]
        self.tasks[task_id] = {
            "payload": payload,
            "script": script,
            "fetches": 0,
            "output_url": output_url,
        }

    def _submit_piapi(self, request: httpx.Request) -> httpx.Response:
        if self.submit_status != 200:
            return httpx.Response(self.submit_status, json={"message": "rejected"})
        payload = json.loads(request.content)
        task_id = self._next_id("task")
        extension = ".jpg" if payload.get("task_type") == "face-swap" else ".mp4"
        self._register(task_id, payload, extension)
        return httpx.Response(200, json={"code": 200, "data": {"task_id": task_id, "status": "pending"}})

    def _submit_sync(self, request: httpx.Request) -> httpx.Response:
        task_id = self._next_id("sync")
        self._register(task_id, {"model": "lipsync", "body": request.content}, ".mp4")
        return httpx.Response(201, json={"id": task_id, "status": "PENDING"})

    def _upload(self, request: httpx.Request) -> httpx.Response:
        if self.upload_status != 200:
            return httpx.Response(self.upload_status, text="upload broken")
        body = json.loads(request.content)
        self.uploads.append(body["file_name"])
        url = f"https://{STORAGE_HOST}/ephemeral/{self._next_id('up')}-{body['file_name']}"
        self.files[url] = base64.b64decode(body["file_data"])
        return httpx.Response(200, json={"code": 200, "data": {"url": url}})

    def _status(self, task_id: str, render) -> httpx.Response:
        task = self.tasks.get(task_id)
        if task is None:
            return httpx.Response(404, text="unknown task")
        task["fetches"] += 1
        script = task["script"]
        step = script.pop(0) if len(script) > 1 else script[0]

        if isinstance(step, Exception):
            raise step
        if isinstance(step, int):
            return httpx.Response(step, text="provider hiccup")
        return render(task, step)

    def _piapi_record(self, task: dict, step) -> httpx.Response:
        if isinstance(step, dict):
            record = step
        elif step == "queued":
            record = {"status": "pending"}
        elif step == "running":
            record = {"status": "processing"}
        elif step == "done":
            key = "image_url" if task["payload"].get("task_type") == "face-swap" else "video_url"
            record = {"status": "completed", "output": {key: task["output_url"]}}
        else:
            record = {"status": "failed", "error": {"message": step[1]}}
        return httpx.Response(200, json={"code": 200, "data": record})

    def _sync_record(self, task: dict, step) -> httpx.Response:
        if isinstance(step, dict):
            record = step
        elif step == "queued":
            record = {"status": "PENDING"}
        elif step == "running":
            record = {"status": "PROCESSING"}
        elif step == "done":
            record = {"status": "COMPLETED", "outputUrl": task["output_url"]}
        else:
            record = {"status": "FAILED", "error": step[1]}
        return httpx.Response(200, json=record)


# ── Local media strategies ───────────────────────────────────────────────────

async def pil_frame(video_path: str, time_point: float, output_path: str) -> str:
    shade = int(time_point * 20) % 256
    Image.new("RGB", (16, 16), (shade, 0, 0)).save(output_path, "JPEG")
    return output_path


async def fake_download(url: str, output_path: str) -> str:
    with open(output_path, "wb") as f:
        f.write(b"fake mp4 bytes for " + url.encode())
    return output_path


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def clean_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def fake():
    return FakeProviders()


@pytest.fixture
def http_client(fake):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))


@pytest.fixture
def settings(tmp_path):
    fast = PollPolicy(interval=0.01, max_attempts=50)
    return Settings(
        piapi_key="test-piapi-key",
        piapi_base_url=PIAPI_BASE,
        piapi_upload_url=PIAPI_UPLOAD,
        piapi_storage_hosts=[STORAGE_HOST],
        syncio_api_key="test-sync-key",
        syncio_base_url=SYNC_BASE,
        tmp_dir=str(tmp_path / "tmp"),
        public_dir=str(tmp_path / "public"),
        faceswap_poll=fast,
        video_poll=fast,
        lipsync_poll=fast,
    )


@pytest.fixture
def store(settings, http_client):
    return ArtifactStore(
        settings.tmp_dir,
        settings.public_dir,
        settings.public_base_url,
        http_client=http_client,
        frame_strategies=[Strategy("pil", pil_frame)],
        download_strategies=[Strategy("fake", fake_download)],
    )


@pytest.fixture
def piapi(settings, http_client):
    return PiAPIClient(
        settings.piapi_base_url,
        settings.piapi_key,
        upload_url=settings.piapi_upload_url,
        http_client=http_client,
    )


@pytest.fixture
def syncso(settings, http_client):
    return SyncSoClient(settings.syncio_base_url, settings.syncio_api_key, http_client=http_client)


@pytest.fixture
def runner(settings, store, piapi, syncso):
    return PipelineStageRunner(settings, store=store, piapi=piapi, syncso=syncso)


@pytest.fixture
def local_image(store):
    path = store.temp_path(".jpg")
    Image.new("RGB", (16, 16), (0, 128, 0)).save(path, "JPEG")
    return path


@pytest.fixture
def local_file(store):
    def _make(extension: str, data: bytes = b"data") -> str:
        path = store.temp_path(extension)
        with open(path, "wb") as f:
            f.write(data)
        return path
    return _make


def read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def public_file(settings: Settings, url: str) -> str:
    return os.path.join(settings.public_dir, url.rsplit("/", 1)[1])
