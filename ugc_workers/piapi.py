"""
PiAPI task client.

Face-swap (Qubico image toolkit) and video generation (Kling, Luma) all run
on PiAPI's unified task API:

  POST {base}/task              → { code: 200, data: { task_id, status, ... } }
  GET  {base}/task/{task_id}    → { code: 200, data: { status, output, error } }
  POST ephemeral upload         → { code: 200, data: { url } }

Older deployments answer with the bare record (no code/data wrapper), so
both envelopes are accepted. Anything else is rejected loudly.
"""

import base64
import logging
import os
from typing import Optional, Sequence
from urllib.parse import urlparse

import httpx

from .errors import ProviderRejected, UploadFailed, ValidationError
from .task_client import RemoteTask, RemoteTaskClient, TaskSnapshot, TaskStatus

logger = logging.getLogger(__name__)


class PiAPIClient(RemoteTaskClient):
    provider = "piapi"
    tag = "PiAPI"

    STATUS_MAP = {
        "pending": TaskStatus.QUEUED,
        "staged": TaskStatus.QUEUED,
        "queued": TaskStatus.QUEUED,
        "processing": TaskStatus.RUNNING,
        "running": TaskStatus.RUNNING,
        "in_progress": TaskStatus.RUNNING,
        "completed": TaskStatus.COMPLETED,
        "success": TaskStatus.COMPLETED,
        "failed": TaskStatus.FAILED,
        "error": TaskStatus.FAILED,
    }

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        upload_url: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        super().__init__(base_url, api_key, http_client=http_client, timeout=timeout)
        self.upload_url = upload_url or f"{self.base_url}/upload"

    def _headers(self) -> dict:
        return {"x-api-key": self.api_key}

    def _record(self, body: dict) -> dict:
        """Unwrap `{code, data, message}` or accept a bare record."""
        if "code" in body or "data" in body:
            code = body.get("code")
            if code is not None and code != 200:
                raise ProviderRejected(
                    f"[PiAPI] Request rejected (code={code}): {body.get('message', 'no message')}",
                    status_code=code if isinstance(code, int) else None,
                )
            record = body.get("data")
            if not isinstance(record, dict):
                raise ProviderRejected(f"[PiAPI] Envelope without a data object: {body}")
            return record
        return body

    async def submit(self, payload: dict) -> RemoteTask:
        body = self._json(await self._send("POST", f"{self.base_url}/task", json=payload))
        record = self._record(body)

        task_id = record.get("task_id") or record.get("id")
        if not task_id:
            raise ProviderRejected(f"[PiAPI] Submit response has no task_id: {body}")

        task = self._task(task_id, kind=payload.get("task_type", "task"))
        logger.info(f"[PiAPI] Submitted {payload.get('model')}/{task.kind}: task_id={task.provider_task_id}")
        return task

    async def upload(self, local_path: str) -> str:
        try:
            with open(local_path, "rb") as f:
                file_data = base64.b64encode(f.read()).decode("utf-8")
        except OSError as e:
            raise UploadFailed(f"[PiAPI] Cannot read {local_path}: {e}") from e

        payload = {"file_name": os.path.basename(local_path), "file_data": file_data}
        try:
            body = self._json(await self._send("POST", self.upload_url, json=payload))
            record = self._record(body)
        except ProviderRejected as e:
            raise UploadFailed(f"[PiAPI] Upload of {local_path} failed: {e}") from e

        url = record.get("url")
        if not url or not isinstance(url, str):
            raise UploadFailed(f"[PiAPI] Upload response has no url: {body}")

        logger.info(f"[PiAPI] Uploaded {os.path.basename(local_path)} → {url[:80]}")
        return url

    async def fetch_status(self, task_id: str) -> TaskSnapshot:
        body = self._json(await self._send("GET", f"{self.base_url}/task/{task_id}"))
        record = self._record(body)
        status = self.normalize_status(record.get("status"))

        error = None
        if status == TaskStatus.FAILED:
            error = _error_message(record.get("error"))

        return TaskSnapshot(status=status, output=record.get("output"), error=error)


async def ensure_provider_url(
    ref: str,
    client: PiAPIClient,
    store,
    storage_hosts: Sequence[str] = (),
) -> str:
    """
    Turn a media reference into a URL PiAPI accepts as task input.

      - URL on PiAPI's own storage      → used as-is
      - local path or worker-published URL → uploaded from disk
      - any other http(s) URL           → downloaded, then re-uploaded
    """
    if not ref:
        raise ValidationError("Empty media reference")

    parsed = urlparse(ref)
    host = (parsed.hostname or "").lower()
    if host and any(host == h or host.endswith(f".{h}") for h in storage_hosts):
        return ref

    local_path = store.resolve_local(ref)
    if local_path:
        return await client.upload(local_path)

    if parsed.scheme in ("http", "https"):
        logger.info(f"[PiAPI] Re-hosting third-party media: {ref[:80]}")
        local_path = await store.materialize(ref)
        return await client.upload(local_path)

    raise ValidationError(f"Cannot resolve media reference: {ref[:120]}")


def _error_message(error) -> str:
    if isinstance(error, dict):
        return error.get("message") or error.get("raw_message") or "Unknown error"
    if error:
        return str(error)
    return "Unknown error"
