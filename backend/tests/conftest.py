"""Shared fixtures and fakes for the encode pipeline and the queue."""

import asyncio
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from transcoder.config import Settings
from transcoder.database import init_db
from transcoder.exceptions import RenditionEncodeError
from transcoder.models.job import SourceDescriptor
from transcoder.models.schemas import TranscodeOutput
from transcoder.services.ladder import make_rendition
from transcoder.utils.ffmpeg import FFmpegError

HD_SOURCE = SourceDescriptor(
    width=1920,
    height=1080,
    duration=120.0,
    bitrate=4000,
    framerate=30.0,
    codec="h264",
    audio_codec="aac",
)


class FakeRunner:
    """Stands in for FFmpegRunner; fails the commands it is told to fail."""

    def __init__(self, available=True, fail_dash=False, fail_single=False):
        self.ffmpeg_path = "ffmpeg"
        self.available = available
        self.fail_dash = fail_dash
        self.fail_single = fail_single
        self.calls = []

    async def check_available(self) -> bool:
        return self.available

    async def run(self, args, duration, progress_callback=None):
        self.calls.append(list(args))
        is_dash = "dash" in args
        output = Path(args[-1])

        if progress_callback:
            await progress_callback(40.0)

        if is_dash and self.fail_dash:
            # Leave a partial segment behind like an interrupted encode would
            output.with_name(f"{output.stem}_init-0.m4s").write_bytes(b"partial")
            raise FFmpegError("ffmpeg exited with code 1: dash muxer error", returncode=1)
        if not is_dash and self.fail_single:
            raise FFmpegError("ffmpeg exited with code 1: encoder error", returncode=1)

        output.write_bytes(b"media")
        if progress_callback:
            await progress_callback(100.0)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    config = Settings()
    config.TRANSCODE_ENABLED = True
    config.TEMP_DIR = str(tmp_path / "temp")
    config.OUTPUT_DIR = str(tmp_path / "output")
    config.OUTPUT_DIR_MODE = "flat"
    config.RETAIN_ORIGINAL = True
    Path(config.TEMP_DIR).mkdir()
    return config


@pytest.fixture
def source_file(tmp_path) -> Path:
    path = tmp_path / "source.mp4"
    path.write_bytes(b"not really a video")
    return path


@pytest.fixture
def fake_probe():
    async def probe(file_path: str, ffprobe_path: str = "ffprobe") -> SourceDescriptor:
        return HD_SOURCE

    return probe


def make_output(output_dir: str, renditions=None) -> TranscodeOutput:
    renditions = [make_rendition(640, 360, 500, "360p")] if renditions is None else renditions
    return TranscodeOutput(
        base_name="video_1",
        manifest_path=f"{output_dir}/video_1.mpd",
        output_dir=output_dir,
        renditions=renditions,
        quality_labels=[r.label for r in renditions],
        retained_original=True,
    )


class ScriptedPipeline:
    """Reports a few progress values, then succeeds or fails by file name."""

    def __init__(self, delay: float = 0.01):
        self.delay = delay
        self.running = 0
        self.max_running = 0

    async def transcode(self, input_path, output_dir, options=None, progress_callback=None):
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        name = Path(input_path).name
        try:
            for percent in (25.0, 10.0, 75.0):
                await asyncio.sleep(self.delay)
                if progress_callback:
                    await progress_callback(percent)
            if name.startswith("crash"):
                raise RuntimeError("encoder crashed")
            if name.startswith("broken"):
                raise RenditionEncodeError("bad stream")
            if name.startswith("empty"):
                return make_output(output_dir, renditions=[])
            return make_output(output_dir)
        finally:
            self.running -= 1


class GatedPipeline:
    """Holds every job until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.started = []

    async def transcode(self, input_path, output_dir, options=None, progress_callback=None):
        self.started.append(input_path)
        await self.release.wait()
        return make_output(output_dir)




@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
