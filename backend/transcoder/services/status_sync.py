"""Persists queue events onto video records."""
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from transcoder.database import AsyncSessionLocal
from transcoder.models.job import JobStatus, TranscodeStatus
from transcoder.models.schemas import JobSnapshot
from transcoder.models.video import VideoRecord
from transcoder.services.job_queue import QueueEvent, TranscodeQueue

logger = logging.getLogger(__name__)

_STATUS_FOR_JOB = {
    JobStatus.PENDING: TranscodeStatus.PROCESSING,
    JobStatus.PROCESSING: TranscodeStatus.PROCESSING,
    JobStatus.COMPLETED: TranscodeStatus.COMPLETED,
    JobStatus.FAILED: TranscodeStatus.FAILED,
}


class StatusSynchronizer:
    """Keeps VideoRecord rows in step with the transcode queue."""

    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self.session_factory = session_factory

    def attach(self, queue: TranscodeQueue):
        """Subscribe to the queue events that change a record."""
        queue.subscribe(QueueEvent.STARTED, self.on_job_started)
        queue.subscribe(QueueEvent.PROGRESS, self.on_job_progress)
        queue.subscribe(QueueEvent.COMPLETED, self.on_job_completed)
        queue.subscribe(QueueEvent.LINKED, self.on_job_linked)

    async def _get_or_create(self, db: AsyncSession, content_ref: str) -> VideoRecord:
        result = await db.execute(select(VideoRecord).where(VideoRecord.content_ref == content_ref))
        record = result.scalar_one_or_none()
        if record is None:
            record = VideoRecord(content_ref=content_ref, transcode_status=TranscodeStatus.NONE.value)
            db.add(record)
        return record

    @staticmethod
    def _apply(record: VideoRecord, job: JobSnapshot):
        record.transcode_job_id = job.job_id
        record.transcode_status = _STATUS_FOR_JOB[job.status].value
        record.progress_percent = job.progress

        if job.status == JobStatus.COMPLETED and job.result and job.result.data:
            record.manifest_path = job.result.data.manifest_path
            record.error_message = None
        elif job.status == JobStatus.FAILED:
            record.error_message = job.error

    async def _sync(self, job: JobSnapshot):
        if not job.content_ref:
            return
        async with self.session_factory() as db:
            try:
                record = await self._get_or_create(db, job.content_ref)
                self._apply(record, job)
                await db.commit()
                logger.info(
                    f"Video record {job.content_ref} updated: {record.transcode_status} (job {job.job_id})"
                )
            except Exception as e:
                logger.error(f"Error updating video record for job {job.job_id}: {e}")

    async def on_job_started(self, job: JobSnapshot):
        await self._sync(job)

    async def on_job_progress(self, job_id: str, percent: float):
        async with self.session_factory() as db:
            try:
                await db.execute(
                    update(VideoRecord)
                    .where(VideoRecord.transcode_job_id == job_id)
                    .values(progress_percent=percent)
                )
                await db.commit()
            except Exception as e:
                logger.error(f"Error updating progress for job {job_id}: {e}")

    async def on_job_completed(self, job: JobSnapshot):
        await self._sync(job)

    async def on_job_linked(self, job: JobSnapshot):
        await self._sync(job)

    async def get_record(self, content_ref: str) -> Optional[VideoRecord]:
        """Load the record of one content item."""
        async with self.session_factory() as db:
            result = await db.execute(select(VideoRecord).where(VideoRecord.content_ref == content_ref))
            return result.scalar_one_or_none()
