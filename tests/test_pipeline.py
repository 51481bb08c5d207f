"""
End-to-end stage tests for PipelineStageRunner against the fake providers.
"""

import asyncio
import os

import pytest

from conftest import STORAGE_HOST, public_file, read_bytes
from ugc_workers import metrics
from ugc_workers.config import VideoProvider
from ugc_workers.errors import TaskFailed, ValidationError
from ugc_workers.pipeline.models import (
    DownloadRequest,
    FaceSwapRequest,
    GenerateVideoRequest,
    LipSyncRequest,
    PipelineRunRequest,
    PipelineStatus,
)

TIKTOK_URL = "https://www.tiktok.com/@creator/video/7300000000000000000"
FACE_URL = f"https://{STORAGE_HOST}/ephemeral/face.jpg"


class TestStages:

    @pytest.mark.asyncio
    async def test_download_extracts_labelled_frames(self, settings, runner):
        result = await runner.download(DownloadRequest(video_url=TIKTOK_URL))

        assert os.path.isfile(result.video_path)
        assert len(result.frame_paths) == 2
        assert result.frame_labels == ["start frame", "5-second frame"]
        for path, url in zip(result.frame_paths, result.frame_urls):
            assert url.startswith("/temp/")
            assert read_bytes(public_file(settings, url)) == read_bytes(path)

    @pytest.mark.asyncio
    async def test_face_swap_materializes_and_publishes_each_frame(self, settings, fake, runner):
        download = await runner.download(DownloadRequest(video_url=TIKTOK_URL))

        result = await runner.face_swap(FaceSwapRequest(
            frame_paths=download.frame_paths, swap_image_url=FACE_URL,
        ))

        assert len(result.swapped_paths) == 2
        assert len(fake.submitted()) == 2
        for path, url in zip(result.swapped_paths, result.swapped_urls):
            assert path.endswith(".jpg")
            assert read_bytes(path).startswith(b"result of task-")
            assert read_bytes(public_file(settings, url)) == read_bytes(path)

    @pytest.mark.asyncio
    async def test_third_party_face_is_rehosted_once_per_stage(self, fake, runner):
        face = "https://cdn.example.com/me.jpg"
        fake.files[face] = b"my face"
        download = await runner.download(DownloadRequest(video_url=TIKTOK_URL))

        await runner.face_swap(FaceSwapRequest(
            frame_paths=download.frame_paths, swap_image_url=face,
        ))

        face_fetches = [r for r in fake.requests if r.method == "GET" and str(r.url) == face]
        assert len(face_fetches) == 1
        assert len(fake.uploads) == 3
        swap_images = {p["input"]["swap_image"] for p in fake.submitted()}
        assert len(swap_images) == 1
        assert fake.files[swap_images.pop()] == b"my face"

    @pytest.mark.asyncio
    async def test_face_swap_failure_stops_before_video_generation(self, fake, runner):
        download = await runner.download(DownloadRequest(video_url=TIKTOK_URL))
        fake.script_next("running", "done")
        fake.script_next("running", ("fail", "no face detected"))

        with pytest.raises(TaskFailed, match="no face detected"):
            await runner.face_swap(FaceSwapRequest(
                frame_paths=download.frame_paths, swap_image_url=FACE_URL,
            ))

        assert fake.submitted("kling") == []
        snapshot = metrics.get_snapshot()
        assert snapshot["counters"]["errors.face_swap"] == 1
        assert snapshot["recent_errors"][-1]["error_type"] == "TaskFailed"

    @pytest.mark.asyncio
    async def test_face_swap_rejects_foreign_frame_paths(self, fake, runner):
        with pytest.raises(ValidationError):
            await runner.face_swap(FaceSwapRequest(
                frame_paths=["/etc/hosts"], swap_image_url=FACE_URL,
            ))

        assert fake.submitted() == []

    @pytest.mark.asyncio
    async def test_generate_video_returns_three_published_videos(self, settings, fake, runner, local_image):
        frame_url = runner.store.publish(local_image)

        result = await runner.generate_video(GenerateVideoRequest(
            first_frame_url=frame_url, last_frame_url=frame_url, prompt="she smiles",
        ))

        assert result.provider == VideoProvider.KLING
        assert len(result.video_paths) == 3
        assert len(result.video_urls) == 3
        for path, url in zip(result.video_paths, result.video_urls):
            assert path.endswith(".mp4")
            assert read_bytes(public_file(settings, url)) == read_bytes(path)

    @pytest.mark.asyncio
    async def test_concurrent_runs_keep_their_own_provider(self, fake, runner):
        kling, luma = await asyncio.gather(
            runner.generate_video(GenerateVideoRequest(
                first_frame_url=FACE_URL, last_frame_url=FACE_URL, prompt="a", provider="kling",
            )),
            runner.generate_video(GenerateVideoRequest(
                first_frame_url=FACE_URL, last_frame_url=FACE_URL, prompt="b", provider="luma",
            )),
        )

        assert kling.provider == VideoProvider.KLING
        assert luma.provider == VideoProvider.LUMA
        assert {p["input"]["prompt"] for p in fake.submitted("kling")} == {"a"}
        assert {p["input"]["prompt"] for p in fake.submitted("luma")} == {"b"}
        assert runner.settings.video_provider == VideoProvider.KLING

    @pytest.mark.asyncio
    async def test_lip_sync_accepts_local_video_and_remote_audio(self, settings, fake, runner, local_file):
        video = local_file(".mp4", b"video")
        fake.files["https://cdn.example.com/voice.mp3"] = b"voice"

        result = await runner.lip_sync(LipSyncRequest(
            video_url=video, audio_url="https://cdn.example.com/voice.mp3",
        ))

        body = fake.tasks["sync-1"]["payload"]["body"]
        assert b"video" in body and b"voice" in body
        assert read_bytes(result.lipsynced_video_path) == b"result of sync-1"
        assert result.lipsynced_video_url.startswith("/temp/")


class TestRunPipeline:

    def _request(self, **overrides):
        body = {
            "tiktokUrl": TIKTOK_URL,
            "swapImageUrl": FACE_URL,
            "prompt": "creator waves at the camera",
        }
        body.update(overrides)
        return PipelineRunRequest.model_validate(body)

    @pytest.mark.asyncio
    async def test_full_run_with_lip_sync(self, fake, runner):
        fake.files["https://cdn.example.com/voice.mp3"] = b"voice"

        status = await runner.run_pipeline("job-1", self._request(audioUrl="https://cdn.example.com/voice.mp3"))

        assert status.status == PipelineStatus.COMPLETED
        assert status.progress_pct == 100
        assert status.result.download.frame_labels == ["start frame", "5-second frame"]
        assert len(status.result.face_swap.swapped_urls) == 2
        assert len(status.result.video.video_urls) == 3
        assert status.result.lip_sync.lipsynced_video_url.startswith("/temp/")
        assert runner.get_status("job-1") == status

    @pytest.mark.asyncio
    async def test_full_run_without_audio_skips_lip_sync(self, fake, runner):
        status = await runner.run_pipeline("job-2", self._request(provider="luma"))

        assert status.status == PipelineStatus.COMPLETED
        assert status.result.lip_sync is None
        assert status.result.video.provider == VideoProvider.LUMA
        assert not any(t.startswith("sync-") for t in fake.tasks)

    @pytest.mark.asyncio
    async def test_failed_stage_marks_job_failed(self, fake, runner):
        fake.script_next(("fail", "no face detected"))

        status = await runner.run_pipeline("job-3", self._request())

        assert status.status == PipelineStatus.FAILED
        assert "no face detected" in status.error
        assert status.current_step == "Swapping faces..."
        assert status.progress_pct == 30
        assert fake.submitted("kling") == []

    @pytest.mark.asyncio
    async def test_background_run_reports_progress(self, runner):
        initial = runner.run_pipeline_background(self._request(jobId="job-4"))

        assert initial.job_id == "job-4"
        assert initial.status == PipelineStatus.PENDING

        for _ in range(500):
            status = runner.get_status("job-4")
            if status.status in (PipelineStatus.COMPLETED, PipelineStatus.FAILED):
                break
            await asyncio.sleep(0.01)

        assert runner.get_status("job-4").status == PipelineStatus.COMPLETED

    def test_unknown_job_has_no_status(self, runner):
        assert runner.get_status("missing") is None
