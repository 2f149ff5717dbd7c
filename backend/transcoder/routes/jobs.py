"""Transcode job API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from transcoder.config import settings
from transcoder.dependencies import get_transcode_queue
from transcoder.models.schemas import (
    ConcurrencyUpdate,
    ContentRefUpdate,
    JobCreate,
    JobCreateResponse,
    JobSnapshot,
    QueueOverview,
)
from transcoder.services.job_queue import TranscodeQueue, is_readable_file

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=JobCreateResponse)
async def create_job(job_data: JobCreate, queue: TranscodeQueue = Depends(get_transcode_queue)):
    """
    Submit a transcode job.

    In queue mode the job id is returned immediately; otherwise the request
    waits for the job to finish and returns its result as well.

    Args:
        job_data: Job creation data
        queue: Transcode queue

    Returns:
        Job id and, outside queue mode, the result
    """
    if not is_readable_file(job_data.input_path):
        raise HTTPException(status_code=400, detail=f"Input file is not readable: {job_data.input_path}")

    try:
        job_id = queue.submit(
            job_data.input_path,
            job_data.output_dir or settings.OUTPUT_DIR,
            job_data.options,
            content_ref=job_data.content_ref,
        )
        logger.info(f"Created job {job_id} for {job_data.input_path}")

        if job_data.options.use_queue_mode:
            return JobCreateResponse(job_id=job_id, queued=True)

        snapshot = await queue.wait_for(job_id)
        return JobCreateResponse(job_id=job_id, queued=False, result=snapshot.result)

    except Exception as e:
        logger.error(f"Error creating job: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/queue", response_model=QueueOverview)
async def get_queue(queue: TranscodeQueue = Depends(get_transcode_queue)):
    """Get pending, active and recently finished jobs."""
    return queue.queue_overview()


@router.put("/queue/concurrency", response_model=QueueOverview)
async def set_concurrency(update: ConcurrencyUpdate, queue: TranscodeQueue = Depends(get_transcode_queue)):
    """
    Change the concurrency limit (clamped to 1-10).

    Args:
        update: Requested limit
        queue: Transcode queue

    Returns:
        Queue overview after the change
    """
    queue.set_concurrency_limit(update.limit)
    return queue.queue_overview()


@router.get("/{job_id}", response_model=JobSnapshot)
async def get_job(job_id: str, queue: TranscodeQueue = Depends(get_transcode_queue)):
    """
    Get job details by ID.

    Args:
        job_id: Job ID
        queue: Transcode queue

    Returns:
        Job details
    """
    snapshot = queue.status(job_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return snapshot


@router.put("/{job_id}/content-ref", response_model=JobSnapshot)
async def link_content(job_id: str, update: ContentRefUpdate, queue: TranscodeQueue = Depends(get_transcode_queue)):
    """Attach the owning content to a job, whatever its state."""
    if not queue.link_content_reference(job_id, update.content_ref):
        raise HTTPException(status_code=404, detail="Job not found")
    return queue.status(job_id)
