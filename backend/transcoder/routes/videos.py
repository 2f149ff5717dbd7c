"""Video transcode status endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from transcoder.dependencies import get_status_synchronizer, get_transcode_queue
from transcoder.models.schemas import VideoStatusResponse
from transcoder.services.job_queue import TranscodeQueue
from transcoder.services.status_sync import StatusSynchronizer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/transcode-status/{content_ref}", response_model=VideoStatusResponse)
async def get_transcode_status(
    content_ref: str,
    status_sync: StatusSynchronizer = Depends(get_status_synchronizer),
    queue: TranscodeQueue = Depends(get_transcode_queue),
):
    """
    Get the persisted transcode state of a content item.

    Live status and progress are added while the job is still known to the queue.
    """
    try:
        record = await status_sync.get_record(content_ref)
    except Exception as e:
        logger.error(f"Error loading video record {content_ref}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    if not record:
        raise HTTPException(status_code=404, detail="Video not found")

    job = queue.status(record.transcode_job_id) if record.transcode_job_id else None

    return VideoStatusResponse(
        content_ref=record.content_ref,
        manifest_path=record.manifest_path,
        transcode_status=record.transcode_status,
        transcode_job_id=record.transcode_job_id,
        error_message=record.error_message,
        task_status=job.status if job else None,
        task_progress=job.progress if job else None,
    )
