"""
Local artifact store.

Providers only speak URLs; stages pass local paths. Every stage boundary
goes through here:

  materialize(url)   → <tmp>/<uuid>.<ext>
  publish(path)      → copy to <public>/<filename>, URL <public_base>/<filename>
  extract_frames()   → one JPEG per timestamp, via ordered strategies
  download_video()   → source video, via ordered strategies

Artifacts are never modified or deleted once written. Publishing is keyed
by filename: an existing public copy is never overwritten.
"""

import asyncio
import logging
import os
import shutil
import uuid
from contextlib import asynccontextmanager
from typing import Optional, Sequence
from urllib.parse import urlparse

import httpx

from ..errors import ArtifactNotFound, DownloadFailed, FrameExtractionFailed, ValidationError
from .models import Artifact, ArtifactKind
from .strategies import (
    StrategiesExhausted,
    Strategy,
    default_download_strategies,
    default_frame_strategies,
    first_success,
)

logger = logging.getLogger(__name__)

EXTENSION_KINDS = {
    ".mp4": ArtifactKind.VIDEO,
    ".mov": ArtifactKind.VIDEO,
    ".webm": ArtifactKind.VIDEO,
    ".jpg": ArtifactKind.IMAGE,
    ".jpeg": ArtifactKind.IMAGE,
    ".png": ArtifactKind.IMAGE,
    ".webp": ArtifactKind.IMAGE,
    ".mp3": ArtifactKind.AUDIO,
    ".wav": ArtifactKind.AUDIO,
    ".m4a": ArtifactKind.AUDIO,
    ".aac": ArtifactKind.AUDIO,
}


def frame_label(time_point: float) -> str:
    if time_point == 0:
        return "start frame"
    return f"{time_point:g}-second frame"


class ArtifactStore:
    def __init__(
        self,
        tmp_dir: str,
        public_dir: str,
        public_base_url: str = "/temp",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
        ffmpeg_path: str = "ffmpeg",
        ytdlp_path: str = "yt-dlp",
        frame_strategies: Optional[Sequence[Strategy]] = None,
        download_strategies: Optional[Sequence[Strategy]] = None,
    ):
        self.tmp_dir = os.path.abspath(tmp_dir)
        self.public_dir = os.path.abspath(public_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

        os.makedirs(self.tmp_dir, exist_ok=True)
        os.makedirs(self.public_dir, exist_ok=True)

        self.frame_strategies = list(frame_strategies or default_frame_strategies(ffmpeg_path))
        self.download_strategies = list(
            download_strategies or default_download_strategies(self, ytdlp_path)
        )

    # ── Paths ────────────────────────────────────────────────────────────

    def temp_path(self, extension: str) -> str:
        """A fresh, uniquely named path under the temp root."""
        extension = extension if extension.startswith(".") else f".{extension}"
        return os.path.join(self.tmp_dir, f"{uuid.uuid4()}{extension}")

    def _within_roots(self, path: str) -> bool:
        real = os.path.realpath(path)
        for root in (self.tmp_dir, self.public_dir):
            root = os.path.realpath(root)
            if real == root or real.startswith(root + os.sep):
                return True
        return False

    def resolve_local(self, ref: str) -> Optional[str]:
        """
        Map a published URL or a path under the store's roots to a local
        file. Returns None for anything else (e.g. third-party URLs).
        """
        if not ref:
            return None

        prefix = f"{self.public_base_url}/"
        if ref.startswith(prefix):
            filename = os.path.basename(ref[len(prefix):].split("?", 1)[0])
            for root in (self.public_dir, self.tmp_dir):
                candidate = os.path.join(root, filename)
                if filename and os.path.isfile(candidate):
                    return candidate
            raise ArtifactNotFound(f"Published artifact no longer on disk: {ref}")

        if urlparse(ref).scheme in ("http", "https"):
            return None

        if os.path.isfile(ref) and self._within_roots(ref):
            return os.path.abspath(ref)
        return None

    def require_local(self, ref: str) -> str:
        """Like resolve_local, but missing or foreign files are a ValidationError."""
        local = self.resolve_local(ref)
        if not local:
            raise ValidationError(f"Not a local artifact: {ref}")
        return local

    # ── Download ─────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _client(self):
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                yield client

    async def download_to(self, url: str, output_path: str) -> str:
        """Stream `url` into `output_path`."""
        try:
            async with self._client() as client:
                async with client.stream("GET", url, follow_redirects=True) as response:
                    if response.status_code >= 400:
                        raise DownloadFailed(f"GET {url} returned {response.status_code}")
                    with open(output_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
        except httpx.HTTPError as e:
            _remove_partial(output_path)
            raise DownloadFailed(f"GET {url} failed: {e!r}") from e
        except DownloadFailed:
            _remove_partial(output_path)
            raise
        return output_path

    async def materialize(
        self, remote_url: str, suffix: Optional[str] = None, default_suffix: str = ".bin"
    ) -> str:
        """
        Copy `remote_url` into a uniquely named temp file.

        Published URLs and paths under the store's roots are copied from
        disk; only http(s) URLs are downloaded. The extension is `suffix`
        if given, else the source's own extension when it is a known media
        type, else `default_suffix`.
        """
        local = self.resolve_local(remote_url)
        source = local or urlparse(remote_url).path
        if not suffix:
            suffix = os.path.splitext(source)[1].lower()
            if suffix not in EXTENSION_KINDS:
                suffix = default_suffix
        output_path = self.temp_path(suffix)

        if local:
            await asyncio.to_thread(shutil.copyfile, local, output_path)
            logger.info(f"Materialized {remote_url[:80]} from disk → {output_path}")
            return output_path

        if urlparse(remote_url).scheme not in ("http", "https"):
            raise DownloadFailed(f"Cannot materialize {remote_url!r}: not a URL or local artifact")
        await self.download_to(remote_url, output_path)
        logger.info(f"Materialized {remote_url[:80]} → {output_path}")
        return output_path

    async def download_video(self, url: str) -> str:
        """Fetch a source video (TikTok, direct MP4, ...) into the temp root."""
        output_path = self.temp_path(".mp4")
        try:
            return await first_success(
                self.download_strategies, f"Download {url[:80]}", url, output_path
            )
        except StrategiesExhausted as e:
            raise DownloadFailed(f"Failed to download video {url}: {e}") from e

    # ── Publish ──────────────────────────────────────────────────────────

    def publish(self, local_path: str) -> str:
        """Copy a local file into the public directory and return its URL."""
        if not os.path.isfile(local_path):
            raise ArtifactNotFound(f"Cannot publish missing file: {local_path}")

        filename = os.path.basename(local_path)
        public_path = os.path.join(self.public_dir, filename)

        if not os.path.exists(public_path):
            shutil.copyfile(local_path, public_path)
            os.chmod(public_path, 0o644)
            logger.debug(f"Published {local_path} → {public_path}")

        return f"{self.public_base_url}/{filename}"

    def artifact(self, local_path: str) -> Artifact:
        ext = os.path.splitext(local_path)[1].lower()
        return Artifact(
            local_path=local_path,
            public_url=self.publish(local_path),
            kind=EXTENSION_KINDS.get(ext, ArtifactKind.IMAGE),
        )

    def save_upload(self, filename: str, data: bytes) -> Artifact:
        """Store user-uploaded bytes under a fresh name and publish them."""
        ext = os.path.splitext(filename or "")[1].lower() or ".jpg"
        local_path = self.temp_path(ext)
        with open(local_path, "wb") as f:
            f.write(data)
        return self.artifact(local_path)

    # ── Frames ───────────────────────────────────────────────────────────

    async def extract_frames(self, local_video_path: str, time_points: Sequence[float]) -> list[str]:
        """Extract one JPEG per timestamp. All or nothing."""
        if not os.path.isfile(local_video_path):
            raise ArtifactNotFound(f"Video not found: {local_video_path}")

        frame_paths = []
        for time_point in time_points:
            output_path = self.temp_path(".jpg")
            try:
                frame_paths.append(await first_success(
                    self.frame_strategies,
                    f"Frame at {time_point}s",
                    local_video_path, time_point, output_path,
                ))
            except StrategiesExhausted as e:
                raise FrameExtractionFailed(time_point, e.attempts) from e

        logger.info(f"Extracted {len(frame_paths)} frame(s) from {local_video_path}")
        return frame_paths


def _remove_partial(path: str):
    if os.path.exists(path):
        os.remove(path)
