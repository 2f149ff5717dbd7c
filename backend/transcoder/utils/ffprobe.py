"""FFprobe wrapper utilities for extracting source video metadata."""
import asyncio
import json
import logging
from typing import Any, Dict

from transcoder.exceptions import ProbeError
from transcoder.models.job import SourceDescriptor

logger = logging.getLogger(__name__)

DEFAULT_FPS = 30.0


async def get_video_info(file_path: str, ffprobe_path: str = "ffprobe") -> Dict[str, Any]:
    """
    Run ffprobe and return its JSON output.

    Args:
        file_path: Path to video file
        ffprobe_path: ffprobe binary

    Returns:
        Parsed ffprobe document

    Raises:
        ProbeError: If ffprobe cannot be run or rejects the file
    """
    try:
        process = await asyncio.create_subprocess_exec(
            ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            file_path,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
    except OSError as e:
        raise ProbeError(f"Could not run ffprobe on {file_path}: {e}") from e

    if process.returncode != 0:
        raise ProbeError(f"FFprobe failed for {file_path}: {stderr.decode(errors='ignore').strip()}")

    try:
        return json.loads(stdout.decode())
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProbeError(f"Unreadable ffprobe output for {file_path}: {e}") from e


def eval_fps(fps_string: Any) -> float:
    """
    Evaluate FPS from fraction string (e.g., "30000/1001").

    Args:
        fps_string: FPS as fraction string

    Returns:
        FPS as float, DEFAULT_FPS when missing or malformed
    """
    try:
        if "/" in fps_string:
            num, den = fps_string.split("/")
            fps = float(num) / float(den)
        else:
            fps = float(fps_string)
    except (ValueError, ZeroDivisionError, TypeError):
        return DEFAULT_FPS
    return fps if fps > 0 else DEFAULT_FPS


def parse_source(data: Dict[str, Any]) -> SourceDescriptor:
    """
    Build a SourceDescriptor from an ffprobe document.

    Raises:
        ProbeError: If there is no usable video stream
    """
    streams = data.get("streams", [])
    video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)

    if not video_stream:
        raise ProbeError("No video stream found")

    width = int(video_stream.get("width") or 0)
    height = int(video_stream.get("height") or 0)
    if width <= 0 or height <= 0:
        raise ProbeError(f"Invalid video dimensions {width}x{height}")

    format_info = data.get("format", {})
    try:
        duration = float(format_info.get("duration") or video_stream.get("duration") or 0)
        bit_rate = int(format_info.get("bit_rate") or video_stream.get("bit_rate") or 0)
    except (TypeError, ValueError) as e:
        raise ProbeError(f"Malformed format metadata: {e}") from e

    return SourceDescriptor(
        width=width,
        height=height,
        duration=duration,
        bitrate=bit_rate // 1000,
        framerate=eval_fps(video_stream.get("r_frame_rate")),
        codec=video_stream.get("codec_name", "unknown"),
        audio_codec=audio_stream.get("codec_name", "unknown") if audio_stream else None,
    )


async def probe_source(file_path: str, ffprobe_path: str = "ffprobe") -> SourceDescriptor:
    """Probe a file and describe its video."""
    source = parse_source(await get_video_info(file_path, ffprobe_path))
    logger.info(
        f"Probed {file_path}: {source.width}x{source.height} {source.bitrate}kbps "
        f"{source.framerate:.2f}fps {source.duration:.1f}s"
    )
    return source
