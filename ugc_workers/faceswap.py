"""
Face-swap via PiAPI's Qubico image toolkit.

  upload target frame → resolve swap face URL → submit face-swap → poll → image URL
"""

import logging
from typing import Sequence

from . import metrics
from .config import PollPolicy
from .errors import PipelineError
from .outputs import FACESWAP_VARIANTS, match_output
from .piapi import PiAPIClient, ensure_provider_url
from .poller import await_completion

logger = logging.getLogger(__name__)

FACESWAP_MODEL = "Qubico/image-toolkit"
FACESWAP_TASK_TYPE = "face-swap"


class FaceSwapAdapter:
    def __init__(
        self,
        client: PiAPIClient,
        store,
        poll: PollPolicy,
        storage_hosts: Sequence[str] = (),
    ):
        self.client = client
        self.store = store
        self.poll = poll
        self.storage_hosts = storage_hosts

    async def resolve_swap_image(self, swap_image_url: str) -> str:
        """Turn any face reference into a URL PiAPI accepts. Resolve once per stage."""
        try:
            return await ensure_provider_url(
                swap_image_url, self.client, self.store, self.storage_hosts
            )
        except PipelineError as e:
            logger.error(f"[FaceSwap] Could not resolve swap image {swap_image_url[:80]}: {e}")
            raise

    async def face_swap(self, target_image_path: str, swap_image_url: str) -> str:
        """
        Swap the face from `swap_image_url` onto the image at `target_image_path`.

        Args:
            target_image_path: Local path of the frame to edit.
            swap_image_url:    Face source. May be a PiAPI URL, a URL this
                               worker published, or any third-party URL.

        Returns:
            Provider URL of the swapped image.
        """
        swap_url = await self.resolve_swap_image(swap_image_url)
        return await self.swap_onto(target_image_path, swap_url)

    async def swap_onto(self, target_image_path: str, swap_url: str) -> str:
        """Like face_swap, for a face URL already returned by resolve_swap_image."""
        try:
            target_url = await self.client.upload(target_image_path)

            task = await self.client.submit({
                "model": FACESWAP_MODEL,
                "task_type": FACESWAP_TASK_TYPE,
                "input": {
                    "target_image": target_url,
                    "swap_image": swap_url,
                },
            })
            metrics.inc_counter(f"tasks.submitted.{self.client.provider}")

            output = await await_completion(
                task, self.client.fetch_status, self.poll.interval, self.poll.max_attempts
            )
            image_url = match_output(
                output, FACESWAP_VARIANTS, context=f"[FaceSwap] task {task.provider_task_id}"
            )
        except PipelineError as e:
            logger.error(f"[FaceSwap] Failed for {target_image_path}: {e}")
            raise

        logger.info(f"[FaceSwap] Result: {image_url[:80]}")
        return image_url
