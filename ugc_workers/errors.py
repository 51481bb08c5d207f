"""
Error taxonomy for the pipeline worker.

Every failure raised by a client, adapter, poller or artifact store is a
PipelineError. The HTTP layer maps ValidationError to 400 and everything
else to 500; nothing here is retried across stage boundaries.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class ValidationError(PipelineError):
    """Missing or malformed caller input."""


# ── Provider side ────────────────────────────────────────────────────────────

class ProviderRejected(PipelineError):
    """
    Transport, auth or envelope failure while talking to a provider.

    `transient` marks failures the poller may retry (timeouts, connection
    resets, 429, 5xx). Submission never retries, whatever the flag says.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, transient: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient


class UploadFailed(PipelineError):
    """Pushing a local file to provider storage failed."""


class TaskFailed(PipelineError):
    """The provider reported a terminal business failure."""

    def __init__(self, reason: str, *, task_id: str = ""):
        super().__init__(f"Task {task_id} failed: {reason}" if task_id else f"Task failed: {reason}")
        self.reason = reason
        self.task_id = task_id


class PollTimeout(PipelineError):
    """No terminal status within the attempt budget."""

    def __init__(self, task_id: str, attempts: int, elapsed: float):
        super().__init__(
            f"Task {task_id} did not finish after {attempts} polls ({elapsed:.0f}s)"
        )
        self.task_id = task_id
        self.attempts = attempts


class UnexpectedOutputShape(PipelineError):
    """A completed task's output matched none of the known variants."""


# ── Local materialization ────────────────────────────────────────────────────

class DownloadFailed(PipelineError):
    """Fetching a remote artifact to local storage failed."""


class ArtifactNotFound(DownloadFailed):
    """A local artifact path or published URL does not resolve to a file."""


class FrameExtractionFailed(PipelineError):
    """Every extraction strategy failed for a timestamp."""

    def __init__(self, time_point: float, attempts: list[str]):
        super().__init__(
            f"Failed to extract frame at {time_point}s: " + "; ".join(attempts)
        )
        self.time_point = time_point
        self.attempts = attempts
