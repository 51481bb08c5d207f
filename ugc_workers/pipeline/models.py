"""
Pydantic models and enums for the UGC video pipeline.

Field names are snake_case in Python and camelCase on the wire
(tiktokUrl, framePaths, videoUrls, ...), matching the node editor.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

from ..config import VideoProvider

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Pipeline Status ──────────────────────────────────────────────────────────

class PipelineStatus(str, Enum):
    PENDING = "PENDING"
    DOWNLOADING = "DOWNLOADING"
    EXTRACTING_FRAMES = "EXTRACTING_FRAMES"
    FACE_SWAPPING = "FACE_SWAPPING"
    GENERATING_VIDEO = "GENERATING_VIDEO"
    LIP_SYNCING = "LIP_SYNCING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# ── Artifacts ────────────────────────────────────────────────────────────────

class ArtifactKind(str, Enum):
    VIDEO = "video"
    IMAGE = "image"
    AUDIO = "audio"


class Artifact(_WireModel):
    """A media file on local disk plus the public URL serving the same bytes."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    local_path: str
    public_url: str
    kind: ArtifactKind
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ── Stage: Download + Extract Frames ─────────────────────────────────────────

DEFAULT_TIME_POINTS = [0.0, 5.0]


class DownloadRequest(_WireModel):
    video_url: NonEmptyStr = Field(
        ..., validation_alias=AliasChoices("tiktokUrl", "videoUrl", "video_url")
    )
    time_points: list[Annotated[float, Field(ge=0)]] = Field(
        default_factory=lambda: list(DEFAULT_TIME_POINTS), min_length=1
    )


class DownloadResult(_WireModel):
    video_path: str
    frame_paths: list[str]
    frame_urls: list[str]
    frame_labels: list[str]


# ── Stage: Face Swap ─────────────────────────────────────────────────────────

class FaceSwapRequest(_WireModel):
    frame_paths: list[NonEmptyStr] = Field(..., min_length=1)
    swap_image_url: NonEmptyStr


class FaceSwapResult(_WireModel):
    swapped_paths: list[str]
    swapped_urls: list[str]


class FaceSwapBody(_WireModel):
    """POST /api/faceswap: frames at 0s and 5s from the download stage."""
    frame0_path: NonEmptyStr = Field(..., alias="frame0Path")
    frame5_path: NonEmptyStr = Field(..., alias="frame5Path")
    swap_image_url: NonEmptyStr


class ManualFrameSwapBody(_WireModel):
    """POST /api/manual-frame-swap: two frames uploaded by the user."""
    frame0_path: NonEmptyStr = Field(..., alias="frame0Path")
    frame1_path: NonEmptyStr = Field(..., alias="frame1Path")
    swap_image_url: NonEmptyStr


# ── Stage: Generate Video ────────────────────────────────────────────────────

class GenerateVideoRequest(_WireModel):
    first_frame_url: NonEmptyStr
    last_frame_url: NonEmptyStr
    prompt: NonEmptyStr
    provider: Optional[VideoProvider] = None


class GenerateVideoResult(_WireModel):
    provider: VideoProvider
    video_paths: list[str]
    video_urls: list[str]


# ── Stage: Lip Sync ──────────────────────────────────────────────────────────

class LipSyncRequest(_WireModel):
    video_url: NonEmptyStr = Field(
        ..., validation_alias=AliasChoices("tiktokUrl", "videoUrl", "video_url")
    )
    audio_url: NonEmptyStr


class LipSyncResult(_WireModel):
    lipsynced_video_path: str
    lipsynced_video_url: str


# ── Full Run ─────────────────────────────────────────────────────────────────

class PipelineRunRequest(_WireModel):
    job_id: Optional[str] = None
    video_url: NonEmptyStr = Field(
        ..., validation_alias=AliasChoices("tiktokUrl", "videoUrl", "video_url")
    )
    swap_image_url: NonEmptyStr
    prompt: NonEmptyStr
    audio_url: Optional[str] = None
    provider: Optional[VideoProvider] = None


class PipelineRunResult(_WireModel):
    download: DownloadResult
    face_swap: FaceSwapResult
    video: GenerateVideoResult
    lip_sync: Optional[LipSyncResult] = None


class PipelineStatusResponse(_WireModel):
    job_id: str
    status: PipelineStatus
    current_step: str = ""
    progress_pct: int = 0
    result: Optional[PipelineRunResult] = None
    error: Optional[str] = None


class UploadResult(_WireModel):
    file_path: str
    file_url: str
