"""FFmpeg command construction and execution with progress tracking."""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, List, Optional, Sequence

from transcoder.models.job import Rendition

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], Awaitable[None]]

# Segment file templates, prefixed by the package base name
INIT_SEGMENT_TEMPLATE = "{base}_init-$RepresentationID$.$ext$"
MEDIA_SEGMENT_TEMPLATE = "{base}_chunk-$RepresentationID$-$Number%05d$.$ext$"

STDERR_TAIL_LINES = 20


class FFmpegError(Exception):
    """FFmpeg exited unsuccessfully or could not be started."""

    def __init__(self, message: str, returncode: Optional[int] = None, log: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.log = log


def _video_rate_args(rendition: Rendition, index: Optional[int] = None) -> List[str]:
    suffix = f":v:{index}" if index is not None else ":v"
    return [
        f"-b{suffix}", f"{rendition.bitrate}k",
        f"-maxrate{suffix}", f"{rendition.maxrate}k",
        f"-bufsize{suffix}", f"{rendition.bufsize}k",
    ]


def _keyframe_args(gop_size: int) -> List[str]:
    # Fixed GOP so every segment starts on a keyframe
    return ["-g", str(gop_size), "-keyint_min", str(gop_size), "-sc_threshold", "0"]


def build_dash_command(
    input_path: str,
    manifest_path: str,
    renditions: Sequence[Rendition],
    gop_size: int,
    segment_duration: int,
    base_name: str,
    has_audio: bool = True,
    preset: str = "medium",
    audio_bitrate: str = "128k",
) -> List[str]:
    """
    Build arguments for a single multi-rendition DASH encode.

    Every rendition maps the first video stream with its own scale filter and
    rate control; one audio stream is shared by all of them.

    Returns:
        FFmpeg arguments (without the binary)
    """
    args = ["-i", input_path]

    for _ in renditions:
        args.extend(["-map", "0:v:0"])
    if has_audio:
        args.extend(["-map", "0:a:0"])

    args.extend(["-c:v", "libx264", "-preset", preset, "-profile:v", "main", "-pix_fmt", "yuv420p"])
    for index, rendition in enumerate(renditions):
        args.extend([f"-filter:v:{index}", f"scale={rendition.width}:{rendition.height}"])
        args.extend(_video_rate_args(rendition, index))
    args.extend(_keyframe_args(gop_size))

    if has_audio:
        args.extend(["-c:a", "aac", "-b:a", audio_bitrate, "-ac", "2"])

    adaptation_sets = "id=0,streams=v id=1,streams=a" if has_audio else "id=0,streams=v"
    args.extend([
        "-f", "dash",
        "-seg_duration", str(segment_duration),
        "-use_template", "1",
        "-use_timeline", "0",
        "-adaptation_sets", adaptation_sets,
        "-init_seg_name", INIT_SEGMENT_TEMPLATE.format(base=base_name),
        "-media_seg_name", MEDIA_SEGMENT_TEMPLATE.format(base=base_name),
        manifest_path,
    ])
    return args


def build_single_file_command(
    input_path: str,
    output_path: str,
    rendition: Rendition,
    gop_size: int,
    has_audio: bool = True,
    preset: str = "medium",
    audio_bitrate: str = "128k",
) -> List[str]:
    """Build arguments for a plain single-rendition MP4 encode."""
    args = [
        "-i", input_path,
        "-map", "0:v:0",
        "-c:v", "libx264",
        "-preset", preset,
        "-profile:v", "main",
        "-level", "3.1",
        "-pix_fmt", "yuv420p",
        "-vf", f"scale={rendition.width}:{rendition.height}",
    ]
    args.extend(_video_rate_args(rendition))
    args.extend(_keyframe_args(gop_size))
    if has_audio:
        args.extend(["-map", "0:a:0", "-c:a", "aac", "-b:a", audio_bitrate, "-ac", "2"])
    args.extend(["-movflags", "+faststart", "-f", "mp4", output_path])
    return args


def parse_progress_line(line: str, duration: float) -> Optional[float]:
    """
    Convert an ffmpeg -progress line into a percentage.

    Args:
        line: One key=value line from the progress stream
        duration: Source duration in seconds

    Returns:
        Percentage (0-100) or None if the line carries no position
    """
    if "=" not in line:
        return None
    key, value = line.split("=", 1)
    if key == "progress" and value == "end":
        return 100.0
    if key not in ("out_time_us", "out_time_ms") or duration <= 0:
        return None
    try:
        # ffmpeg reports out_time_ms in microseconds as well
        seconds = int(value) / 1_000_000
    except ValueError:
        return None
    return round(max(0.0, min(seconds / duration * 100, 100.0)), 2)


class FFmpegRunner:
    """Runs ffmpeg processes and reports their progress."""

    def __init__(self, ffmpeg_path: str = "ffmpeg"):
        self.ffmpeg_path = ffmpeg_path

    async def check_available(self) -> bool:
        """Return True if the ffmpeg binary can be executed."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.ffmpeg_path,
                "-hide_banner",
                "-version",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            await process.wait()
        except OSError as e:
            logger.warning(f"FFmpeg not available at {self.ffmpeg_path}: {e}")
            return False
        if process.returncode != 0:
            logger.warning(f"FFmpeg at {self.ffmpeg_path} exited with code {process.returncode}")
            return False
        return True

    async def run(
        self,
        args: Sequence[str],
        duration: float,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Execute ffmpeg and forward progress until it exits.

        Args:
            args: Arguments built by one of the build_* helpers
            duration: Source duration in seconds (for progress calculation)
            progress_callback: Async function called with the percentage

        Raises:
            FFmpegError: If the process cannot start or exits non-zero
        """
        cmd = [self.ffmpeg_path, "-hide_banner", "-nostats", "-y", "-progress", "pipe:1", *args]
        logger.info(f"Executing: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise FFmpegError(f"Could not start ffmpeg: {e}") from e

        stderr_tail: deque = deque(maxlen=STDERR_TAIL_LINES)

        async def read_progress():
            assert process.stdout is not None
            last_percent = 0.0
            async for line in process.stdout:
                percent = parse_progress_line(line.decode(errors="ignore").strip(), duration)
                if percent is None or percent <= last_percent:
                    continue
                last_percent = percent
                if progress_callback:
                    await progress_callback(percent)

        async def read_stderr():
            # Drained concurrently so a full pipe cannot stall ffmpeg
            assert process.stderr is not None
            async for line in process.stderr:
                text = line.decode(errors="ignore").strip()
                if text:
                    stderr_tail.append(text)

        try:
            await asyncio.gather(read_progress(), read_stderr())
            await process.wait()
        finally:
            if process.returncode is None:
                logger.warning(f"Stopping ffmpeg (pid {process.pid}) after an interrupted run")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        if process.returncode != 0:
            log = "\n".join(stderr_tail)
            last_line = stderr_tail[-1] if stderr_tail else "no output"
            raise FFmpegError(
                f"ffmpeg exited with code {process.returncode}: {last_line}",
                returncode=process.returncode,
                log=log,
            )
