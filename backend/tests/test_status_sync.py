"""Tests for persisting queue events onto video records."""

import pytest

from conftest import GatedPipeline, ScriptedPipeline
from transcoder.models.job import TranscodeStatus
from transcoder.services.job_queue import TranscodeQueue
from transcoder.services.status_sync import StatusSynchronizer


@pytest.fixture
def source(tmp_path) -> str:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"video")
    return str(path)


class TestStatusSynchronizer:

    async def test_completed_job_updates_record(self, session_factory, source, tmp_path) -> None:
        status_sync = StatusSynchronizer(session_factory)

        async with TranscodeQueue(ScriptedPipeline()) as queue:
            status_sync.attach(queue)
            job_id = queue.submit(source, str(tmp_path / "out"), content_ref="post-1")
            await queue.join()

        record = await status_sync.get_record("post-1")
        assert record.transcode_status == TranscodeStatus.COMPLETED.value
        assert record.transcode_job_id == job_id
        assert record.manifest_path == str(tmp_path / "out") + "/video_1.mpd"
        assert record.progress_percent == 100.0
        assert record.error_message is None

    async def test_failed_job_records_error(self, session_factory, tmp_path) -> None:
        crash = tmp_path / "crash.mp4"
        crash.write_bytes(b"video")
        status_sync = StatusSynchronizer(session_factory)

        async with TranscodeQueue(ScriptedPipeline()) as queue:
            status_sync.attach(queue)
            queue.submit(str(crash), str(tmp_path / "out"), content_ref="post-2")
            await queue.join()

        record = await status_sync.get_record("post-2")
        assert record.transcode_status == TranscodeStatus.FAILED.value
        assert record.error_message == "encoder crashed"

    async def test_jobs_without_content_are_not_persisted(self, session_factory, source, tmp_path) -> None:
        status_sync = StatusSynchronizer(session_factory)

        async with TranscodeQueue(ScriptedPipeline()) as queue:
            status_sync.attach(queue)
            queue.submit(source, str(tmp_path / "out"))
            await queue.join()

        assert await status_sync.get_record("post-1") is None

    async def test_link_after_completion_creates_completed_record(self, session_factory, source, tmp_path) -> None:
        status_sync = StatusSynchronizer(session_factory)

        async with TranscodeQueue(ScriptedPipeline()) as queue:
            status_sync.attach(queue)
            job_id = queue.submit(source, str(tmp_path / "out"))
            await queue.join()

            queue.link_content_reference(job_id, "post-3")
            await queue.join()

        record = await status_sync.get_record("post-3")
        assert record.transcode_status == TranscodeStatus.COMPLETED.value
        assert record.transcode_job_id == job_id
        assert record.manifest_path.endswith("video_1.mpd")

    async def test_link_while_processing_marks_processing(self, session_factory, source, tmp_path) -> None:
        status_sync = StatusSynchronizer(session_factory)
        pipeline = GatedPipeline()

        async with TranscodeQueue(pipeline) as queue:
            status_sync.attach(queue)
            job_id = queue.submit(source, str(tmp_path / "out"))
            queue.link_content_reference(job_id, "post-4")
            await queue._events.join()

            record = await status_sync.get_record("post-4")
            assert record.transcode_status == TranscodeStatus.PROCESSING.value

            pipeline.release.set()
            await queue.join()

        record = await status_sync.get_record("post-4")
        assert record.transcode_status == TranscodeStatus.COMPLETED.value
