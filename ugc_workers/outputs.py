"""
Known provider output shapes.

Providers have changed their output layout between versions. Each adapter
declares the shapes it accepts as an ordered list of tagged variants; the
first variant whose path resolves to a non-empty string wins. An output
that matches none of them is an UnexpectedOutputShape, never a guess.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from .errors import UnexpectedOutputShape

logger = logging.getLogger(__name__)

PathStep = Union[str, int]


@dataclass(frozen=True)
class OutputVariant:
    tag: str
    path: tuple[PathStep, ...]

    def extract(self, output: Any) -> Optional[str]:
        node = output
        for step in self.path:
            if isinstance(step, int):
                if not isinstance(node, list) or len(node) <= step:
                    return None
            elif not isinstance(node, dict) or step not in node:
                return None
            node = node[step]
        if isinstance(node, str) and node.strip():
            return node
        return None


def match_output(output: Any, variants: Sequence[OutputVariant], *, context: str) -> str:
    """Return the URL held by the first matching variant."""
    for variant in variants:
        url = variant.extract(output)
        if url:
            logger.debug(f"{context}: output matched variant '{variant.tag}'")
            return url

    tags = ", ".join(v.tag for v in variants)
    raise UnexpectedOutputShape(
        f"{context}: output matched none of [{tags}]: {output!r:.300}"
    )


# ── Variants per capability ──────────────────────────────────────────────────

FACESWAP_VARIANTS = (
    OutputVariant("image_url", ("image_url",)),
    OutputVariant("image_urls", ("image_urls", 0)),
    OutputVariant("image_object", ("image", "url")),
)

KLING_VARIANTS = (
    OutputVariant("video_url", ("video_url",)),
    OutputVariant("works_clean", ("works", 0, "video", "resource_without_watermark")),
    OutputVariant("works", ("works", 0, "video", "resource")),
)

LUMA_VARIANTS = (
    OutputVariant("video_url", ("video_url",)),
    OutputVariant("video_string", ("video",)),
    OutputVariant("video_object", ("video", "url")),
)

LIPSYNC_VARIANTS = (
    OutputVariant("outputUrl", ("outputUrl",)),
    OutputVariant("output_url", ("output_url",)),
)
