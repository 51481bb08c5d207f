"""
Worker configuration.

All values come from environment variables (loaded from .env by main.py)
with sensible defaults. Credentials are opaque strings and are never
validated here.

The video provider is a per-run choice: `RunConfig` is built for each
pipeline run, and `Settings.video_provider` only fills in a run that
did not ask for a specific provider.
"""

import logging
import os
import tempfile
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _env_bool(key: str, default: bool = False) -> bool:
    val = os.getenv(key, "").lower()
    if val in ("true", "1", "yes"):
        return True
    if val in ("false", "0", "no"):
        return False
    return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_list(key: str, default: list[str]) -> list[str]:
    raw = os.getenv(key)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# ── Provider choice ──────────────────────────────────────────────────────────

class VideoProvider(str, Enum):
    KLING = "kling"
    LUMA = "luma"


class PollPolicy(BaseModel):
    """How often and how long to poll one kind of remote task."""
    interval: float = Field(..., gt=0, description="Seconds between status fetches")
    max_attempts: int = Field(..., ge=1, description="Upper bound on status fetches")


def _env_poll_policy(prefix: str, interval: float, max_attempts: int) -> PollPolicy:
    """Read <prefix>_POLL_INTERVAL / <prefix>_POLL_MAX_ATTEMPTS, keeping defaults for out-of-range values."""
    env_interval = _env_float(f"{prefix}_POLL_INTERVAL", interval)
    env_attempts = _env_int(f"{prefix}_POLL_MAX_ATTEMPTS", max_attempts)

    if not env_interval > 0:
        logger.warning(f"[Config] {prefix}_POLL_INTERVAL={env_interval} must be > 0, using {interval}")
        env_interval = interval
    if env_attempts < 1:
        logger.warning(f"[Config] {prefix}_POLL_MAX_ATTEMPTS={env_attempts} must be >= 1, using {max_attempts}")
        env_attempts = max_attempts

    return PollPolicy(interval=env_interval, max_attempts=env_attempts)


class RunConfig(BaseModel):
    """Configuration scoped to a single pipeline run."""
    video_provider: VideoProvider = VideoProvider.KLING


# ── Settings ─────────────────────────────────────────────────────────────────

DEFAULT_TMP_DIR = os.path.join(tempfile.gettempdir(), "ugcv2")

# Hosts whose URLs PiAPI accepts as-is for task inputs.
DEFAULT_PIAPI_STORAGE_HOSTS = ["img.theapi.app", "storage.theapi.app"]


class Settings(BaseModel):
    piapi_key: str = ""
    piapi_base_url: str = "https://api.piapi.ai/api/v1"
    piapi_upload_url: str = "https://upload.theapi.app/api/ephemeral_resource"
    piapi_storage_hosts: list[str] = Field(default_factory=lambda: list(DEFAULT_PIAPI_STORAGE_HOSTS))

    syncio_api_key: str = ""
    syncio_base_url: str = "https://api.sync.so/v2"

    video_provider: VideoProvider = VideoProvider.KLING

    tmp_dir: str = DEFAULT_TMP_DIR
    public_dir: str = os.path.join("public", "temp")
    public_base_url: str = "/temp"

    ffmpeg_path: str = "ffmpeg"
    ytdlp_path: str = "yt-dlp"

    faceswap_poll: PollPolicy = PollPolicy(interval=2, max_attempts=150)
    video_poll: PollPolicy = PollPolicy(interval=5, max_attempts=180)
    lipsync_poll: PollPolicy = PollPolicy(interval=5, max_attempts=120)

    http_timeout: float = 60.0
    log_level: str = "INFO"
    debug_errors: bool = False

    def run_config(self, video_provider: Optional[VideoProvider] = None) -> RunConfig:
        """Build the per-run config, falling back to the process default provider."""
        return RunConfig(video_provider=video_provider or self.video_provider)


def load_settings() -> Settings:
    """Read Settings from the current process environment."""
    provider = os.getenv("VIDEO_PROVIDER", VideoProvider.KLING.value).lower()
    if provider not in {p.value for p in VideoProvider}:
        provider = VideoProvider.KLING.value

    return Settings(
        piapi_key=os.getenv("PIAPI_KEY", ""),
        piapi_base_url=os.getenv("PIAPI_BASE_URL", "https://api.piapi.ai/api/v1"),
        piapi_upload_url=os.getenv(
            "PIAPI_UPLOAD_URL", "https://upload.theapi.app/api/ephemeral_resource"
        ),
        piapi_storage_hosts=_env_list("PIAPI_STORAGE_HOSTS", DEFAULT_PIAPI_STORAGE_HOSTS),
        syncio_api_key=os.getenv("SYNCIO_API_KEY", ""),
        syncio_base_url=os.getenv("SYNCIO_BASE_URL", "https://api.sync.so/v2"),
        video_provider=VideoProvider(provider),
        tmp_dir=os.getenv("UGC_TMP_DIR", DEFAULT_TMP_DIR),
        public_dir=os.getenv("UGC_PUBLIC_DIR", os.path.join("public", "temp")),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "/temp"),
        ffmpeg_path=os.getenv("FFMPEG_PATH", "ffmpeg"),
        ytdlp_path=os.getenv("YTDLP_PATH", "yt-dlp"),
        faceswap_poll=_env_poll_policy("FACESWAP", 2, 150),
        video_poll=_env_poll_policy("VIDEO", 5, 180),
        lipsync_poll=_env_poll_policy("LIPSYNC", 5, 120),
        http_timeout=_env_float("HTTP_TIMEOUT", 60.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        debug_errors=_env_bool("DEBUG_ERRORS", False),
    )
