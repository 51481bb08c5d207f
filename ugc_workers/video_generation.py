"""
Frame-to-video generation on PiAPI.

Each call submits VARIANT_COUNT identical tasks concurrently and returns
one URL per task, only once every task has completed. The first failure
fails the whole call; the remaining tasks are left to finish on their own
and their results are discarded.
"""

import asyncio
import logging
from typing import Sequence

from . import metrics
from .config import PollPolicy
from .errors import PipelineError
from .outputs import OutputVariant, match_output
from .piapi import PiAPIClient, ensure_provider_url
from .poller import await_completion

logger = logging.getLogger(__name__)

VARIANT_COUNT = 3


class VideoGenerationService:
    """Base class for interchangeable first/last-frame video providers."""

    name = "video"
    model = ""
    output_variants: Sequence[OutputVariant] = ()

    def __init__(
        self,
        client: PiAPIClient,
        store,
        poll: PollPolicy,
        storage_hosts: Sequence[str] = (),
        variant_count: int = VARIANT_COUNT,
    ):
        self.client = client
        self.store = store
        self.poll = poll
        self.storage_hosts = storage_hosts
        self.variant_count = variant_count

    def build_input(self, first_frame_url: str, last_frame_url: str, prompt: str) -> dict:
        raise NotImplementedError

    def build_payload(self, first_frame_url: str, last_frame_url: str, prompt: str) -> dict:
        return {
            "model": self.model,
            "task_type": "video_generation",
            "input": self.build_input(first_frame_url, last_frame_url, prompt),
            "config": {"service_mode": "public"},
        }

    async def _run_variant(self, index: int, payload: dict) -> str:
        task = await self.client.submit(payload)
        metrics.inc_counter(f"tasks.submitted.{self.client.provider}")
        logger.info(f"[{self.name}] Variant {index + 1}/{self.variant_count}: task_id={task.provider_task_id}")

        output = await await_completion(
            task, self.client.fetch_status, self.poll.interval, self.poll.max_attempts
        )
        return match_output(
            output, self.output_variants, context=f"[{self.name}] task {task.provider_task_id}"
        )

    async def generate_video(self, first_frame_url: str, last_frame_url: str, prompt: str) -> list[str]:
        """
        Generate `variant_count` candidate videos between two key frames.

        Returns:
            One provider video URL per variant, in submission order.
        """
        try:
            first_url = await ensure_provider_url(
                first_frame_url, self.client, self.store, self.storage_hosts
            )
            last_url = await ensure_provider_url(
                last_frame_url, self.client, self.store, self.storage_hosts
            )
            payload = self.build_payload(first_url, last_url, prompt)

            video_urls = await asyncio.gather(
                *(self._run_variant(i, payload) for i in range(self.variant_count))
            )
        except PipelineError as e:
            logger.error(f"[{self.name}] Video generation failed: {e}")
            raise

        logger.info(f"[{self.name}] All {len(video_urls)} variants completed")
        return list(video_urls)
