"""
PipelineStageRunner: stage sequencing for the UGC video pipeline.

  Download → Extract Frames → Face Swap (×2 frames) → Generate Video (×3 variants)
           → (optional) Lip Sync

Every stage is a coroutine taking its request model and returning its
result model; a stage's request is built only from earlier results plus
user parameters. A failed stage aborts the run. Artifacts already written
stay on disk. Nothing is persisted across restarts.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from .. import metrics
from ..config import RunConfig, Settings
from ..faceswap import FaceSwapAdapter
from ..lipsync import LipSyncAdapter
from ..piapi import PiAPIClient
from ..provider_factory import ProviderFactory
from ..syncso import SyncSoClient
from ..video_generation import VideoGenerationService
from .models import (
    DEFAULT_TIME_POINTS,
    DownloadRequest,
    DownloadResult,
    FaceSwapRequest,
    FaceSwapResult,
    GenerateVideoRequest,
    GenerateVideoResult,
    LipSyncRequest,
    LipSyncResult,
    PipelineRunRequest,
    PipelineRunResult,
    PipelineStatus,
    PipelineStatusResponse,
)
from .storage import ArtifactStore, frame_label

logger = logging.getLogger(__name__)


class PipelineStageRunner:
    """
    Usage:
        runner = PipelineStageRunner(load_settings())

        download = await runner.download(DownloadRequest(video_url=url))
        swapped = await runner.face_swap(FaceSwapRequest(
            frame_paths=download.frame_paths, swap_image_url=face_url))
        videos = await runner.generate_video(GenerateVideoRequest(
            first_frame_url=swapped.swapped_urls[0],
            last_frame_url=swapped.swapped_urls[1],
            prompt=prompt))

    Or all at once with run_pipeline().
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[ArtifactStore] = None,
        piapi: Optional[PiAPIClient] = None,
        syncso: Optional[SyncSoClient] = None,
    ):
        self.settings = settings
        self.store = store or ArtifactStore(
            settings.tmp_dir,
            settings.public_dir,
            settings.public_base_url,
            timeout=settings.http_timeout,
            ffmpeg_path=settings.ffmpeg_path,
            ytdlp_path=settings.ytdlp_path,
        )
        self.piapi = piapi or PiAPIClient(
            settings.piapi_base_url,
            settings.piapi_key,
            upload_url=settings.piapi_upload_url,
            timeout=settings.http_timeout,
        )
        self.syncso = syncso or SyncSoClient(
            settings.syncio_base_url,
            settings.syncio_api_key,
            timeout=settings.http_timeout,
        )
        self.face_swapper = FaceSwapAdapter(
            self.piapi, self.store, settings.faceswap_poll, settings.piapi_storage_hosts
        )
        self.lip_syncer = LipSyncAdapter(self.syncso, settings.lipsync_poll)

        self._jobs: dict[str, PipelineStatusResponse] = {}
        self._background: set[asyncio.Task] = set()

    def video_service(self, run: RunConfig) -> VideoGenerationService:
        return ProviderFactory.get_video_service(
            run.video_provider,
            self.piapi,
            self.store,
            self.settings.video_poll,
            storage_hosts=self.settings.piapi_storage_hosts,
        )

    @asynccontextmanager
    async def _stage(self, name: str):
        started = time.monotonic()
        try:
            yield
        except Exception as e:
            metrics.inc_counter(f"errors.{name}")
            metrics.record_error(name, type(e).__name__, str(e))
            raise
        finally:
            metrics.record_latency(name, (time.monotonic() - started) * 1000)

    # ── Stages ───────────────────────────────────────────────────────────

    async def download_video(self, video_url: str) -> str:
        async with self._stage("download"):
            video_path = await self.store.download_video(video_url)
        logger.info(f"Downloaded {video_url[:80]} → {video_path}")
        return video_path

    async def extract_frames(self, video_path: str, time_points: list[float]) -> DownloadResult:
        async with self._stage("extract_frames"):
            frame_paths = await self.store.extract_frames(video_path, time_points)
            frame_urls = [self.store.publish(p) for p in frame_paths]
        return DownloadResult(
            video_path=video_path,
            frame_paths=frame_paths,
            frame_urls=frame_urls,
            frame_labels=[frame_label(t) for t in time_points],
        )

    async def download(self, request: DownloadRequest) -> DownloadResult:
        """Download the source video and extract frames at the requested times."""
        video_path = await self.download_video(request.video_url)
        return await self.extract_frames(video_path, request.time_points)

    async def face_swap(self, request: FaceSwapRequest) -> FaceSwapResult:
        """Swap the face onto each frame, in order. One failure fails the stage."""
        async with self._stage("face_swap"):
            targets = [self.store.require_local(p) for p in request.frame_paths]
            swap_url = await self.face_swapper.resolve_swap_image(request.swap_image_url)

            swapped_paths, swapped_urls = [], []
            for i, target in enumerate(targets):
                logger.info(f"Face swap {i + 1}/{len(targets)}: {target}")
                provider_url = await self.face_swapper.swap_onto(target, swap_url)
                local_path = await self.store.materialize(provider_url, default_suffix=".jpg")
                swapped_paths.append(local_path)
                swapped_urls.append(self.store.publish(local_path))

        return FaceSwapResult(swapped_paths=swapped_paths, swapped_urls=swapped_urls)

    async def generate_video(
        self,
        request: GenerateVideoRequest,
        run: Optional[RunConfig] = None,
    ) -> GenerateVideoResult:
        """Generate candidate videos between two swapped frames."""
        run = run or self.settings.run_config(request.provider)
        service = self.video_service(run)
        logger.info(f"Generating video with {run.video_provider.value}")

        async with self._stage("generate_video"):
            provider_urls = await service.generate_video(
                request.first_frame_url, request.last_frame_url, request.prompt
            )
            video_paths = await asyncio.gather(
                *(self.store.materialize(url, default_suffix=".mp4") for url in provider_urls)
            )
            video_urls = [self.store.publish(p) for p in video_paths]

        return GenerateVideoResult(
            provider=run.video_provider,
            video_paths=list(video_paths),
            video_urls=video_urls,
        )

    async def lip_sync(self, request: LipSyncRequest) -> LipSyncResult:
        """Lip-sync a video (local artifact or remote URL) to an audio track."""
        video_path = self.store.resolve_local(request.video_url)
        if not video_path:
            video_path = await self.download_video(request.video_url)

        async with self._stage("lip_sync"):
            audio_path = self.store.resolve_local(request.audio_url)
            if not audio_path:
                audio_path = await self.store.materialize(request.audio_url, default_suffix=".mp3")

            provider_url = await self.lip_syncer.lip_sync(video_path, audio_path)
            local_path = await self.store.materialize(provider_url, default_suffix=".mp4")

        return LipSyncResult(
            lipsynced_video_path=local_path,
            lipsynced_video_url=self.store.publish(local_path),
        )

    # ── Full run ─────────────────────────────────────────────────────────

    def get_status(self, job_id: str) -> Optional[PipelineStatusResponse]:
        return self._jobs.get(job_id)

    def _update_status(
        self,
        job_id: str,
        status: PipelineStatus,
        step: str = "",
        progress: int = 0,
        result: Optional[PipelineRunResult] = None,
        error: Optional[str] = None,
    ):
        self._jobs[job_id] = PipelineStatusResponse(
            job_id=job_id,
            status=status,
            current_step=step,
            progress_pct=progress,
            result=result,
            error=error,
        )
        logger.info(f"[{job_id}] {status.value} → {step} ({progress}%)")

    async def run_pipeline(self, job_id: str, request: PipelineRunRequest) -> PipelineStatusResponse:
        """
        Run every stage for one request. The provider choice is fixed for
        the whole run when it starts.
        """
        run = self.settings.run_config(request.provider)
        try:
            self._update_status(job_id, PipelineStatus.DOWNLOADING, "Downloading source video...", 5)
            video_path = await self.download_video(request.video_url)

            self._update_status(job_id, PipelineStatus.EXTRACTING_FRAMES, "Extracting frames...", 20)
            download = await self.extract_frames(video_path, list(DEFAULT_TIME_POINTS))

            self._update_status(job_id, PipelineStatus.FACE_SWAPPING, "Swapping faces...", 30)
            swapped = await self.face_swap(FaceSwapRequest(
                frame_paths=download.frame_paths,
                swap_image_url=request.swap_image_url,
            ))

            self._update_status(
                job_id, PipelineStatus.GENERATING_VIDEO,
                f"Generating videos with {run.video_provider.value}...", 50,
            )
            video = await self.generate_video(
                GenerateVideoRequest(
                    first_frame_url=swapped.swapped_urls[0],
                    last_frame_url=swapped.swapped_urls[-1],
                    prompt=request.prompt,
                    provider=run.video_provider,
                ),
                run,
            )

            lip_sync = None
            if request.audio_url:
                self._update_status(job_id, PipelineStatus.LIP_SYNCING, "Lip-syncing...", 85)
                lip_sync = await self.lip_sync(LipSyncRequest(
                    video_url=video.video_paths[0],
                    audio_url=request.audio_url,
                ))

            self._update_status(
                job_id, PipelineStatus.COMPLETED, "Pipeline complete!", 100,
                result=PipelineRunResult(
                    download=download, face_swap=swapped, video=video, lip_sync=lip_sync,
                ),
            )
        except Exception as e:
            logger.error(f"Pipeline failed for job {job_id}: {e}", exc_info=True)
            previous = self._jobs.get(job_id)
            self._update_status(
                job_id, PipelineStatus.FAILED,
                step=previous.current_step if previous else "",
                progress=previous.progress_pct if previous else 0,
                error=str(e),
            )

        return self._jobs[job_id]

    def run_pipeline_background(self, request: PipelineRunRequest) -> PipelineStatusResponse:
        """Start run_pipeline as a task and return its initial status."""
        job_id = request.job_id or str(uuid.uuid4())
        self._update_status(job_id, PipelineStatus.PENDING, "Queued", 0)

        task = asyncio.create_task(self.run_pipeline(job_id, request))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return self._jobs[job_id]
