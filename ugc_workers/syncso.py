"""
sync.so (Sync Labs) lip-sync client.

  POST {base}/generate        multipart: video, audio, model  → { id, status }
  GET  {base}/generate/{id}   → { id, status, outputUrl?, error? }

Media is attached to the submission directly, so this client has no
separate upload step.
"""

import logging
import os
from typing import Optional

import httpx

from .errors import ArtifactNotFound, ProviderRejected
from .task_client import RemoteTask, RemoteTaskClient, TaskSnapshot, TaskStatus

logger = logging.getLogger(__name__)

LIPSYNC_MODEL = "lipsync-2"


class SyncSoClient(RemoteTaskClient):
    provider = "syncso"
    tag = "Sync"

    STATUS_MAP = {
        "pending": TaskStatus.QUEUED,
        "queued": TaskStatus.QUEUED,
        "processing": TaskStatus.RUNNING,
        "completed": TaskStatus.COMPLETED,
        "failed": TaskStatus.FAILED,
        "rejected": TaskStatus.FAILED,
        "canceled": TaskStatus.FAILED,
        "cancelled": TaskStatus.FAILED,
    }

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 120.0,
    ):
        super().__init__(base_url, api_key, http_client=http_client, timeout=timeout)

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def submit(self, payload: dict) -> RemoteTask:
        """
        Submit a lip-sync job.

        Args:
            payload: {"video_path": ..., "audio_path": ..., "model": optional}
        """
        files = {}
        for field in ("video", "audio"):
            path = payload.get(f"{field}_path")
            if not path:
                raise ProviderRejected(f"[Sync] Missing {field}_path in submission")
            try:
                with open(path, "rb") as f:
                    files[field] = (os.path.basename(path), f.read())
            except OSError as e:
                raise ArtifactNotFound(f"[Sync] Cannot read {field} file {path}: {e}") from e

        data = {"model": payload.get("model", LIPSYNC_MODEL)}
        body = self._json(
            await self._send("POST", f"{self.base_url}/generate", files=files, data=data)
        )

        job_id = body.get("id")
        if not job_id:
            raise ProviderRejected(f"[Sync] Submit response has no id: {body}")

        task = self._task(job_id, kind="lipsync")
        logger.info(f"[Sync] Submitted lip-sync job: id={task.provider_task_id}")
        return task

    async def fetch_status(self, task_id: str) -> TaskSnapshot:
        body = self._json(await self._send("GET", f"{self.base_url}/generate/{task_id}"))
        status = self.normalize_status(body.get("status"))

        error = None
        if status == TaskStatus.FAILED:
            error = body.get("error") or body.get("errorMessage") or "Unknown error"

        # The whole record is the output; the result URL sits at the top level.
        return TaskSnapshot(status=status, output=body, error=str(error) if error else None)
