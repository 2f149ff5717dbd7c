#!/usr/bin/env python3
"""
Script to preview the quality ladder planned for video files.
Probes each file with ffprobe and prints the renditions that would be encoded,
without running any encode.
"""
import asyncio
import sys
from pathlib import Path
from typing import List

from transcoder.config import settings
from transcoder.exceptions import ProbeError
from transcoder.services.conversion_service import gop_size
from transcoder.services.ladder import plan_ladder
from transcoder.utils.ffprobe import probe_source


def find_videos(path: Path, extensions: tuple) -> List[Path]:
    """Collect video files under a directory, or the file itself."""
    if path.is_file():
        return [path]
    return sorted(
        f for f in path.rglob("*")
        if f.is_file() and f.suffix.lower() in extensions
    )


async def preview(files: List[Path], min_bitrate: int, max_bitrate: int, segment_duration: int) -> int:
    """Print the ladder of every file, return the number of unreadable files."""
    failures = 0

    for idx, file_path in enumerate(files, 1):
        print(f"[{idx}/{len(files)}] {file_path}")
        try:
            source = await probe_source(str(file_path), settings.FFPROBE_PATH)
        except ProbeError as e:
            print(f"  ⚠ Could not read file info: {e}")
            failures += 1
            continue

        audio = source.audio_codec or "none"
        print(
            f"  Source: {source.width}x{source.height} {source.codec} "
            f"{source.bitrate}kbps {source.framerate:.2f}fps, audio: {audio}"
        )
        print(f"  GOP: {gop_size(segment_duration, source.framerate)} frames ({segment_duration}s segments)")

        renditions = plan_ladder(
            source,
            min_bitrate=min_bitrate,
            max_bitrate=max_bitrate,
            threshold=settings.BITRATE_THRESHOLD,
        )
        for rendition in renditions:
            print(
                f"    {rendition.label:>6}  {rendition.width}x{rendition.height}  "
                f"{rendition.bitrate}k (max {rendition.maxrate}k, buf {rendition.bufsize}k)"
            )

    return failures


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Preview the adaptive bitrate ladder for video files"
    )
    parser.add_argument(
        "path",
        type=Path,
        help="Video file, or directory to scan (scans all subdirectories)"
    )
    parser.add_argument(
        "--min-bitrate",
        type=int,
        default=settings.MIN_BITRATE,
        help=f"Lowest rung bitrate in kbps (default: {settings.MIN_BITRATE})"
    )
    parser.add_argument(
        "--max-bitrate",
        type=int,
        default=settings.MAX_BITRATE,
        help=f"Highest rung bitrate in kbps (default: {settings.MAX_BITRATE})"
    )
    parser.add_argument(
        "--segment-duration",
        type=int,
        default=settings.SEGMENT_DURATION,
        help=f"Segment length in seconds (default: {settings.SEGMENT_DURATION})"
    )
    parser.add_argument(
        "--extensions",
        nargs="+",
        default=[".mkv", ".mp4", ".avi", ".mov", ".webm"],
        help="Video file extensions to check (default: .mkv .mp4 .avi .mov .webm)"
    )

    args = parser.parse_args()

    if not args.path.exists():
        print(f"Error: Path does not exist: {args.path}")
        sys.exit(1)

    if args.min_bitrate <= 0 or args.max_bitrate < args.min_bitrate:
        print("Error: Bitrates must be positive and --max-bitrate >= --min-bitrate")
        sys.exit(1)

    videos = find_videos(args.path, tuple(e.lower() for e in args.extensions))
    if not videos:
        print("No video files found.")
        sys.exit(0)

    try:
        failed = asyncio.run(preview(videos, args.min_bitrate, args.max_bitrate, args.segment_duration))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user.")
        sys.exit(1)

    sys.exit(1 if failed else 0)
