"""In-memory transcode job and media description types."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from transcoder.models.schemas import TranscodeOptions, TranscodeResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Lifecycle of a queued job: pending -> processing -> completed | failed."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TranscodeStatus(str, Enum):
    """Status persisted on a video record."""
    NONE = "none"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class SourceDescriptor:
    """Probed properties of a source video."""
    width: int
    height: int
    duration: float  # seconds
    bitrate: int  # kbps, 0 when unknown
    framerate: float = 30.0
    codec: str = "unknown"
    audio_codec: Optional[str] = None

    @property
    def has_audio(self) -> bool:
        return self.audio_codec is not None


@dataclass(frozen=True)
class LadderRung:
    """A candidate resolution/bitrate pair from a catalog."""
    width: int
    height: int
    bitrate: int  # kbps
    label: str

    @property
    def short_side(self) -> int:
        return min(self.width, self.height)


@dataclass(frozen=True)
class Rendition:
    """One planned output stream."""
    width: int
    height: int
    bitrate: int  # kbps
    maxrate: int  # kbps
    bufsize: int  # kbps
    label: str


@dataclass
class TranscodeJob:
    """A job owned by the queue.

    Only the transition methods below change a job once it is queued.
    """
    job_id: str
    input_path: str
    output_dir: str
    options: TranscodeOptions
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    content_ref: Optional[str] = None
    result: Optional[TranscodeResult] = None
    error: Optional[str] = None

    @property
    def file_name(self) -> str:
        return Path(self.input_path).name

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def mark_processing(self):
        if self.status != JobStatus.PENDING:
            raise RuntimeError(f"Job {self.job_id} cannot start from {self.status.value}")
        self.status = JobStatus.PROCESSING
        self.started_at = _utcnow()

    def record_progress(self, percent: float) -> bool:
        """Store progress if it moves forward; returns True when stored."""
        if self.status != JobStatus.PROCESSING:
            return False
        percent = max(0.0, min(float(percent), 100.0))
        if percent <= self.progress:
            return False
        self.progress = percent
        return True

    def mark_finished(self, result: TranscodeResult):
        if self.status != JobStatus.PROCESSING:
            raise RuntimeError(f"Job {self.job_id} cannot finish from {self.status.value}")
        self.result = result
        self.completed_at = _utcnow()
        if result.success:
            self.status = JobStatus.COMPLETED
            self.progress = 100.0
        else:
            self.status = JobStatus.FAILED
            self.error = result.message or "Transcode failed"

    def attach_content_ref(self, content_ref: str):
        self.content_ref = content_ref
