"""
Ordered fallback strategies for local media work.

Frame extraction and video download each have several ways to get the job
done. Strategies are tried in order; the first success wins and every
failure before it is logged as a retry attempt.

  Frames:   moviepy save_frame → ffmpeg CLI
  Download: yt_dlp library → yt-dlp CLI → direct HTTP
"""

import asyncio
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from PIL import Image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Strategy:
    name: str
    run: Callable[..., Awaitable[str]]


class StrategiesExhausted(Exception):
    def __init__(self, attempts: list[str]):
        super().__init__("; ".join(attempts))
        self.attempts = attempts


async def first_success(strategies: Sequence[Strategy], description: str, *args) -> str:
    """Run strategies in order and return the first successful result."""
    attempts: list[str] = []
    for i, strategy in enumerate(strategies, start=1):
        try:
            result = await strategy.run(*args)
        except Exception as e:
            attempts.append(f"{strategy.name}: {e}")
            logger.warning(
                f"{description}: strategy '{strategy.name}' failed "
                f"(attempt {i}/{len(strategies)}): {e}"
            )
            continue
        if i > 1:
            logger.info(f"{description}: succeeded with fallback '{strategy.name}'")
        return result
    raise StrategiesExhausted(attempts)


def _require_file(path: str) -> str:
    if not os.path.isfile(path) or os.path.getsize(path) == 0:
        raise RuntimeError(f"no output written to {path}")
    return path


def _verify_image(path: str) -> str:
    _require_file(path)
    with Image.open(path) as img:
        img.verify()
    return path


async def _run_command(cmd: list[str], description: str) -> None:
    def _run():
        return subprocess.run(cmd, capture_output=True, text=True)

    try:
        result = await asyncio.to_thread(_run)
    except FileNotFoundError as e:
        raise RuntimeError(f"{cmd[0]} not found") from e
    if result.returncode != 0:
        raise RuntimeError(f"{description} exited {result.returncode}: {result.stderr.strip()[-300:]}")


# ── Frame extraction ─────────────────────────────────────────────────────────

async def moviepy_frame(video_path: str, time_point: float, output_path: str) -> str:
    def _save():
        from moviepy import VideoFileClip

        with VideoFileClip(video_path, audio=False) as clip:
            clip.save_frame(output_path, t=time_point)

    await asyncio.to_thread(_save)
    return _verify_image(output_path)


def ffmpeg_frame(ffmpeg_path: str = "ffmpeg"):
    async def _extract(video_path: str, time_point: float, output_path: str) -> str:
        await _run_command(
            [
                ffmpeg_path, "-y",
                "-ss", str(time_point),
                "-i", video_path,
                "-vframes", "1",
                "-q:v", "2",
                output_path,
            ],
            description="ffmpeg",
        )
        return _verify_image(output_path)

    return _extract


def default_frame_strategies(ffmpeg_path: str = "ffmpeg") -> list[Strategy]:
    return [
        Strategy("moviepy", moviepy_frame),
        Strategy("ffmpeg-cli", ffmpeg_frame(ffmpeg_path)),
    ]


# ── Video download ───────────────────────────────────────────────────────────

async def ytdlp_library(url: str, output_path: str) -> str:
    def _download():
        import yt_dlp

        opts = {
            "outtmpl": output_path,
            "format": "mp4/bv*+ba/b",
            "merge_output_format": "mp4",
            "noplaylist": True,
            "nocheckcertificate": True,
            "quiet": True,
            "no_warnings": True,
        }
        with yt_dlp.YoutubeDL(opts) as ydl:
            ydl.download([url])

    await asyncio.to_thread(_download)
    return _require_file(output_path)


def ytdlp_cli(ytdlp_path: str = "yt-dlp"):
    async def _download(url: str, output_path: str) -> str:
        await _run_command(
            [ytdlp_path, url, "-o", output_path, "-f", "mp4", "--no-check-certificates"],
            description="yt-dlp",
        )
        return _require_file(output_path)

    return _download


def direct_http(store):
    async def _download(url: str, output_path: str) -> str:
        await store.download_to(url, output_path)
        return _require_file(output_path)

    return _download


def default_download_strategies(store, ytdlp_path: str = "yt-dlp") -> list[Strategy]:
    return [
        Strategy("yt-dlp", ytdlp_library),
        Strategy("yt-dlp-cli", ytdlp_cli(ytdlp_path)),
        Strategy("direct-http", direct_http(store)),
    ]
