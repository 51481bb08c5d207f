"""
FastAPI routes for the UGC video pipeline.

Stage Endpoints (one per node in the editor):
  POST /api/download           — download video, extract frames at 0s and 5s
  POST /api/faceswap           — swap a face onto both frames
  POST /api/manual-frame-swap  — same, for two user-uploaded frames
  POST /api/kling              — generate 3 candidate videos (Kling or Luma)
  POST /api/lipsync            — lip-sync a video to an audio track
  POST /api/upload             — store an uploaded file and publish it

Pipeline Endpoints:
  POST /api/pipeline/run           — run every stage in the background
  GET  /api/pipeline/status/{id}   — status of a background run

Errors are rendered by the handlers in main.py as {"error": "..."}:
400 for missing/invalid input, 500 for anything else.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile

from .. import metrics
from ..errors import ValidationError
from .models import (
    DownloadRequest,
    DownloadResult,
    FaceSwapBody,
    FaceSwapRequest,
    GenerateVideoRequest,
    GenerateVideoResult,
    LipSyncRequest,
    LipSyncResult,
    ManualFrameSwapBody,
    PipelineRunRequest,
    PipelineStatusResponse,
    UploadResult,
)
from .orchestrator import PipelineStageRunner

logger = logging.getLogger(__name__)

pipeline_router = APIRouter(prefix="/api", tags=["pipeline"])


def get_runner(request: Request) -> PipelineStageRunner:
    return request.app.state.runner


# ── Stages ───────────────────────────────────────────────────────────────────

@pipeline_router.post("/download", response_model=DownloadResult)
async def download(body: DownloadRequest, runner: PipelineStageRunner = Depends(get_runner)):
    """Download the source video and extract the start and 5-second frames."""
    metrics.inc_counter("requests.download")
    return await runner.download(body)


@pipeline_router.post("/faceswap")
async def faceswap(body: FaceSwapBody, runner: PipelineStageRunner = Depends(get_runner)):
    metrics.inc_counter("requests.faceswap")
    result = await runner.face_swap(FaceSwapRequest(
        frame_paths=[body.frame0_path, body.frame5_path],
        swap_image_url=body.swap_image_url,
    ))
    return {
        "swappedFrame0Path": result.swapped_paths[0],
        "swappedFrame5Path": result.swapped_paths[1],
        "swappedFrame0Url": result.swapped_urls[0],
        "swappedFrame5Url": result.swapped_urls[1],
    }


@pipeline_router.post("/manual-frame-swap")
@pipeline_router.post("/manual-faceswap", include_in_schema=False)
async def manual_frame_swap(body: ManualFrameSwapBody, runner: PipelineStageRunner = Depends(get_runner)):
    metrics.inc_counter("requests.manual_frame_swap")
    result = await runner.face_swap(FaceSwapRequest(
        frame_paths=[body.frame0_path, body.frame1_path],
        swap_image_url=body.swap_image_url,
    ))
    return {
        "swappedFrame0Path": result.swapped_paths[0],
        "swappedFrame1Path": result.swapped_paths[1],
        "swappedFrame0Url": result.swapped_urls[0],
        "swappedFrame1Url": result.swapped_urls[1],
    }


@pipeline_router.post("/kling", response_model=GenerateVideoResult)
async def generate_video(body: GenerateVideoRequest, runner: PipelineStageRunner = Depends(get_runner)):
    """
    Generate three candidate videos between two frames.

    `provider` selects Kling or Luma for this request only; omitted, the
    worker default (VIDEO_PROVIDER) is used.
    """
    metrics.inc_counter("requests.generate_video")
    return await runner.generate_video(body)


@pipeline_router.post("/lipsync", response_model=LipSyncResult)
async def lipsync(body: LipSyncRequest, runner: PipelineStageRunner = Depends(get_runner)):
    metrics.inc_counter("requests.lipsync")
    return await runner.lip_sync(body)


@pipeline_router.post("/upload", response_model=UploadResult)
async def upload(
    file: Optional[UploadFile] = File(None),
    runner: PipelineStageRunner = Depends(get_runner),
):
    metrics.inc_counter("requests.upload")
    if file is None:
        raise ValidationError("No file provided")

    data = await file.read()
    if not data:
        raise ValidationError("Uploaded file is empty")

    artifact = runner.store.save_upload(file.filename or "", data)
    logger.info(f"Stored upload {file.filename} → {artifact.local_path}")
    return UploadResult(file_path=artifact.local_path, file_url=artifact.public_url)


# ── Full Pipeline ────────────────────────────────────────────────────────────

@pipeline_router.post("/pipeline/run", response_model=PipelineStatusResponse)
async def run_pipeline(body: PipelineRunRequest, runner: PipelineStageRunner = Depends(get_runner)):
    """Start the whole pipeline; poll /api/pipeline/status/{job_id} for progress."""
    metrics.inc_counter("requests.pipeline_run")
    return runner.run_pipeline_background(body)


@pipeline_router.get("/pipeline/status/{job_id}", response_model=PipelineStatusResponse)
async def get_pipeline_status(job_id: str, runner: PipelineStageRunner = Depends(get_runner)):
    status = runner.get_status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return status
