"""Pydantic schemas for transcode options, results and API payloads."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from transcoder.models.job import JobStatus, Rendition


class TranscodeOptions(BaseModel):
    """Per-job options; unset values fall back to settings."""
    min_bitrate: Optional[int] = Field(default=None, gt=0, description="Lowest ladder bitrate (kbps)")
    max_bitrate: Optional[int] = Field(default=None, gt=0, description="Highest ladder bitrate (kbps)")
    segment_duration: Optional[int] = Field(default=None, ge=1, le=30, description="DASH segment length (seconds)")
    use_queue_mode: bool = Field(default=False, description="Return immediately instead of waiting for the result")


class TranscodeOutput(BaseModel):
    """Artifacts of a successful transcode."""
    base_name: str
    manifest_path: str
    output_dir: str
    renditions: list[Rendition]
    quality_labels: list[str]
    retained_original: bool
    fallback: bool = False


class TranscodeResult(BaseModel):
    """Completion result handed to event subscribers."""
    success: bool
    data: Optional[TranscodeOutput] = None
    message: Optional[str] = None


class JobSnapshot(BaseModel):
    """Read-only view of a job."""
    job_id: str
    input_path: str
    output_dir: str
    file_name: str
    options: TranscodeOptions
    status: JobStatus
    progress: float
    created_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    content_ref: Optional[str]
    result: Optional[TranscodeResult]
    error: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class JobSummary(BaseModel):
    """Short job entry used in the queue overview."""
    job_id: str
    file_name: str
    status: JobStatus
    progress: Optional[float] = None
    completed_at: Optional[datetime] = None


class QueueJobs(BaseModel):
    pending: list[JobSummary]
    active: list[JobSummary]
    recent_completed: list[JobSummary]


class QueueOverview(BaseModel):
    """Schema for the queue overview."""
    pending: int
    active: int
    completed: int
    concurrency_limit: int
    jobs: QueueJobs


class JobCreate(BaseModel):
    """Schema for submitting a transcode job."""
    input_path: str = Field(min_length=1)
    output_dir: Optional[str] = Field(default=None, description="Defaults to OUTPUT_DIR")
    options: TranscodeOptions = Field(default_factory=TranscodeOptions)
    content_ref: Optional[str] = None


class JobCreateResponse(BaseModel):
    """Schema for job submission response."""
    job_id: str
    queued: bool
    result: Optional[TranscodeResult] = None


class ContentRefUpdate(BaseModel):
    content_ref: str = Field(min_length=1)


class ConcurrencyUpdate(BaseModel):
    limit: int


class VideoStatusResponse(BaseModel):
    """Persisted transcode state merged with live job progress."""
    content_ref: str
    manifest_path: Optional[str]
    transcode_status: str
    transcode_job_id: Optional[str]
    error_message: Optional[str]
    task_status: Optional[JobStatus] = None
    task_progress: Optional[float] = None
