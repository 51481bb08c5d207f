"""
Bounded polling for remote tasks.

The one place that decides whether a remote job finished. Adapters submit,
then hand the task and their client's fetch_status to await_completion.

  completed            → return the task output
  failed               → TaskFailed, no further fetch
  transient fetch error → logged, counted as an attempt, keep polling
  other fetch error    → propagate immediately
  budget exhausted     → PollTimeout
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from . import metrics
from .errors import PollTimeout, ProviderRejected, TaskFailed
from .task_client import RemoteTask, TaskSnapshot, TaskStatus

logger = logging.getLogger(__name__)

FetchStatus = Callable[[str], Awaitable[TaskSnapshot]]


async def await_completion(
    task: RemoteTask,
    fetch_status: FetchStatus,
    interval: float,
    max_attempts: int,
    *,
    timeout: Optional[float] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Poll `fetch_status` until the task reaches a terminal state.

    Args:
        task:         Handle returned by the client's submit().
        fetch_status: Coroutine function taking the provider task id.
        interval:     Seconds to wait between fetches.
        max_attempts: Hard cap on the number of fetches.
        timeout:      Wall-clock deadline in seconds. Defaults to
                      interval * max_attempts; 0 disables it.

    Returns:
        The provider output of the completed task.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    task_id = task.provider_task_id
    started = time.monotonic()
    budget = interval * max_attempts if timeout is None else timeout
    deadline = started + budget if budget > 0 else None

    attempts = 0
    while attempts < max_attempts:
        attempts += 1
        try:
            snapshot = await fetch_status(task_id)
        except (ProviderRejected, httpx.TransportError) as e:
            if isinstance(e, ProviderRejected) and not e.transient:
                raise
            metrics.inc_counter("polls.transient_errors")
            logger.warning(
                f"[{task.provider}] Poll #{attempts}/{max_attempts} for {task_id} hit a transient error, retrying: {e}"
            )
        else:
            if snapshot.status == TaskStatus.COMPLETED:
                logger.info(f"[{task.provider}] {task.kind} {task_id} completed after {attempts} poll(s)")
                return snapshot.output
            if snapshot.status == TaskStatus.FAILED:
                metrics.inc_counter(f"tasks.failed.{task.provider}")
                raise TaskFailed(snapshot.error or "Unknown error", task_id=task_id)
            logger.debug(f"[{task.provider}] Poll #{attempts}: {task_id} is {snapshot.status.value}")

        if attempts >= max_attempts:
            break
        if deadline is not None and time.monotonic() + interval > deadline:
            break
        await sleep(interval)

    raise PollTimeout(task_id, attempts, time.monotonic() - started)
