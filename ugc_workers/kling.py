"""
Kling image-to-video (first + tail frame) via PiAPI.
"""

from .outputs import KLING_VARIANTS
from .video_generation import VideoGenerationService

KLING_VERSION = "1.6"


class KlingVideoService(VideoGenerationService):
    name = "Kling"
    model = "kling"
    output_variants = KLING_VARIANTS

    def build_input(self, first_frame_url: str, last_frame_url: str, prompt: str) -> dict:
        return {
            "prompt": prompt,
            "image_url": first_frame_url,
            "image_tail_url": last_frame_url,
            "mode": "pro",
            "version": KLING_VERSION,
            "aspect_ratio": "16:9",
        }
