"""
Luma Dream Machine key-frame video via PiAPI.
"""

from .outputs import LUMA_VARIANTS
from .video_generation import VideoGenerationService

LUMA_MODEL_NAME = "ray-v2"
LUMA_DURATION = 5  # seconds


class LumaVideoService(VideoGenerationService):
    name = "Luma"
    model = "luma"
    output_variants = LUMA_VARIANTS

    def build_input(self, first_frame_url: str, last_frame_url: str, prompt: str) -> dict:
        return {
            "prompt": prompt,
            "key_frames": {
                "frame0": {"type": "image", "url": first_frame_url},
                "frame1": {"type": "image", "url": last_frame_url},
            },
            "model_name": LUMA_MODEL_NAME,
            "duration": LUMA_DURATION,
            "aspect_ratio": "16:9",
        }
