"""FastAPI dependencies for the per-process service objects."""
from fastapi import Request

from transcoder.services.job_queue import TranscodeQueue
from transcoder.services.status_sync import StatusSynchronizer


def get_transcode_queue(request: Request) -> TranscodeQueue:
    """The queue created by the application lifespan."""
    return request.app.state.transcode_queue


def get_status_synchronizer(request: Request) -> StatusSynchronizer:
    return request.app.state.status_sync
