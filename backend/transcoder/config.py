"""Configuration management for the transcoding service."""

import os
from pathlib import Path


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in ("false", "0", "no", "off")


class Settings:
    """Application settings loaded from environment variables."""

    # Feature switch
    TRANSCODE_ENABLED: bool = _env_bool("TRANSCODE_ENABLED", "true")

    # Encoding engine binaries
    FFMPEG_PATH: str = os.getenv("FFMPEG_PATH", "ffmpeg")
    FFPROBE_PATH: str = os.getenv("FFPROBE_PATH", "ffprobe")

    # Paths
    TEMP_DIR: str = os.getenv("TEMP_DIR", "/app/temp")
    OUTPUT_DIR: str = os.getenv("OUTPUT_DIR", "/app/output")
    OUTPUT_DIR_MODE: str = os.getenv("OUTPUT_DIR_MODE", "datetime")  # flat, date, datetime
    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "/app/data/app.db")

    # Ladder planning (kbps)
    MIN_BITRATE: int = int(os.getenv("MIN_BITRATE", "500"))
    MAX_BITRATE: int = int(os.getenv("MAX_BITRATE", "2500"))
    BITRATE_THRESHOLD: float = float(os.getenv("BITRATE_THRESHOLD", "0.8"))

    # Encoding
    SEGMENT_DURATION: int = int(os.getenv("SEGMENT_DURATION", "4"))
    AUDIO_BITRATE: str = os.getenv("AUDIO_BITRATE", "128k")
    VIDEO_PRESET: str = os.getenv("VIDEO_PRESET", "medium")
    RETAIN_ORIGINAL: bool = _env_bool("RETAIN_ORIGINAL", "true")

    # Queue
    MAX_CONCURRENT: int = int(os.getenv("MAX_CONCURRENT", "2"))
    HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "100"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    DATABASE_URL: str = f"sqlite+aiosqlite:///{DATABASE_PATH}"

    # CORS
    CORS_ORIGINS: list = ["*"]

    @classmethod
    def ensure_directories(cls):
        """Ensure required directories exist."""
        Path(cls.TEMP_DIR).mkdir(parents=True, exist_ok=True)
        Path(cls.OUTPUT_DIR).mkdir(parents=True, exist_ok=True)
        Path(cls.DATABASE_PATH).parent.mkdir(parents=True, exist_ok=True)


settings = Settings()
