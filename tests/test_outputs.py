"""
Tests for provider output shape matching.
"""

import pytest

from ugc_workers.errors import UnexpectedOutputShape
from ugc_workers.outputs import (
    FACESWAP_VARIANTS,
    KLING_VARIANTS,
    LIPSYNC_VARIANTS,
    LUMA_VARIANTS,
    match_output,
)


class TestMatchOutput:

    @pytest.mark.parametrize("output", [
        {"image_url": "https://img/a.jpg"},
        {"image_urls": ["https://img/a.jpg", "https://img/b.jpg"]},
        {"image": {"url": "https://img/a.jpg"}},
    ])
    def test_faceswap_shapes(self, output):
        assert match_output(output, FACESWAP_VARIANTS, context="test") == "https://img/a.jpg"

    def test_kling_prefers_unwatermarked_work(self):
        output = {"works": [{"video": {
            "resource": "https://v/watermarked.mp4",
            "resource_without_watermark": "https://v/clean.mp4",
        }}]}

        assert match_output(output, KLING_VARIANTS, context="test") == "https://v/clean.mp4"

    def test_kling_falls_back_to_watermarked_work(self):
        output = {"works": [{"video": {"resource": "https://v/watermarked.mp4"}}]}

        assert match_output(output, KLING_VARIANTS, context="test") == "https://v/watermarked.mp4"

    @pytest.mark.parametrize("output", [
        {"video_url": "https://v/l.mp4"},
        {"video": "https://v/l.mp4"},
        {"video": {"url": "https://v/l.mp4"}},
    ])
    def test_luma_shapes(self, output):
        assert match_output(output, LUMA_VARIANTS, context="test") == "https://v/l.mp4"

    def test_lipsync_output_url(self):
        record = {"id": "s1", "status": "COMPLETED", "outputUrl": "https://sync/o.mp4"}

        assert match_output(record, LIPSYNC_VARIANTS, context="test") == "https://sync/o.mp4"

    @pytest.mark.parametrize("output", [
        None,
        {},
        {"image_url": ""},
        {"image_urls": []},
        {"image": {"url": 42}},
        ["https://img/a.jpg"],
    ])
    def test_unknown_shapes_raise(self, output):
        with pytest.raises(UnexpectedOutputShape):
            match_output(output, FACESWAP_VARIANTS, context="test")
