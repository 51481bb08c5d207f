"""
Generic remote task client.

Every provider this worker talks to follows the same queue protocol:

  submit(payload)        → task handle
  upload(local file)     → URL on the provider's ephemeral storage
  fetch_status(task_id)  → { status, output?, error? }

Subclasses translate one provider's HTTP API into that shape. They never
poll; waiting for completion is the poller's job.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .errors import ProviderRejected

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


# ── Task models ──────────────────────────────────────────────────────────────

class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class RemoteTask(BaseModel):
    """Handle returned by a provider on submission."""
    model_config = ConfigDict(frozen=True)

    provider_task_id: str
    kind: str
    provider: str
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TaskSnapshot(BaseModel):
    """Normalized status envelope for one fetch."""
    status: TaskStatus
    output: Optional[Any] = None
    error: Optional[str] = None


# ── Base client ──────────────────────────────────────────────────────────────

class RemoteTaskClient:
    """
    Shared HTTP plumbing for provider clients.

    Pass `http_client` to reuse a connection pool (or a mock transport in
    tests); otherwise a short-lived AsyncClient is opened per request.
    """

    provider = "generic"
    tag = "Provider"

    # Lower-cased provider status → normalized status.
    STATUS_MAP: dict[str, TaskStatus] = {}

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._http_client = http_client

    def _headers(self) -> dict:
        return {}

    @asynccontextmanager
    async def _client(self):
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Issue one request. Transport errors and 429/5xx come back as
        transient ProviderRejected; any other non-2xx is non-transient.
        """
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise ProviderRejected(
                f"[{self.tag}] {method} {url} failed: {e!r}", transient=True
            ) from e

        if response.status_code >= 400:
            raise ProviderRejected(
                f"[{self.tag}] {method} {url} returned {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
                transient=response.status_code in RETRYABLE_STATUS_CODES,
            )
        return response

    def _json(self, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderRejected(
                f"[{self.tag}] Unparseable response body: {response.text[:300]}"
            ) from e
        if not isinstance(data, dict):
            raise ProviderRejected(f"[{self.tag}] Expected a JSON object, got: {data!r:.300}")
        return data

    def normalize_status(self, raw: Any) -> TaskStatus:
        status = self.STATUS_MAP.get(str(raw or "").strip().lower())
        if status is None:
            raise ProviderRejected(f"[{self.tag}] Unknown task status: {raw!r}")
        return status

    def _task(self, task_id: str, kind: str) -> RemoteTask:
        return RemoteTask(provider_task_id=str(task_id), kind=kind, provider=self.provider)

    # ── Contract ─────────────────────────────────────────────────────────

    async def submit(self, payload: dict) -> RemoteTask:
        raise NotImplementedError

    async def upload(self, local_path: str) -> str:
        raise NotImplementedError(f"{self.provider} has no upload endpoint")

    async def fetch_status(self, task_id: str) -> TaskSnapshot:
        raise NotImplementedError
