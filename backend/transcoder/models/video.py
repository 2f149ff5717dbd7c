"""Video record database model."""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Float, Text, DateTime, Index
from transcoder.database import Base


class VideoRecord(Base):
    """Transcode state of one content item, kept in sync from queue events."""

    __tablename__ = "video_records"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # Owning content (post, upload...) as known to the caller
    content_ref = Column(String, nullable=False, unique=True)

    # Output package
    manifest_path = Column(String, nullable=True)

    # Status tracking
    transcode_status = Column(String, nullable=False, default="none")  # none, processing, completed, failed
    transcode_job_id = Column(String, nullable=True)
    progress_percent = Column(Float, default=0.0)

    # Error handling
    error_message = Column(Text, nullable=True)

    # Timestamps
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Indexes
    __table_args__ = (
        Index('idx_video_records_status', 'transcode_status'),
        Index('idx_video_records_job_id', 'transcode_job_id'),
    )
