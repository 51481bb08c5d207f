"""
Lip-sync via sync.so: one job with the video and audio attached.
"""

import logging

from . import metrics
from .config import PollPolicy
from .errors import PipelineError
from .outputs import LIPSYNC_VARIANTS, match_output
from .poller import await_completion
from .syncso import LIPSYNC_MODEL, SyncSoClient

logger = logging.getLogger(__name__)


class LipSyncAdapter:
    def __init__(self, client: SyncSoClient, poll: PollPolicy, model: str = LIPSYNC_MODEL):
        self.client = client
        self.poll = poll
        self.model = model

    async def lip_sync(self, video_path: str, audio_path: str) -> str:
        """Returns the provider URL of the lip-synced video."""
        try:
            task = await self.client.submit({
                "video_path": video_path,
                "audio_path": audio_path,
                "model": self.model,
            })
            metrics.inc_counter(f"tasks.submitted.{self.client.provider}")

            output = await await_completion(
                task, self.client.fetch_status, self.poll.interval, self.poll.max_attempts
            )
            video_url = match_output(
                output, LIPSYNC_VARIANTS, context=f"[LipSync] job {task.provider_task_id}"
            )
        except PipelineError as e:
            logger.error(f"[LipSync] Failed for {video_path}: {e}")
            raise

        logger.info(f"[LipSync] Result: {video_url[:80]}")
        return video_url
