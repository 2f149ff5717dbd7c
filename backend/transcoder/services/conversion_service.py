"""Conversion service: turns a source video into a DASH package."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from transcoder.config import Settings, settings as default_settings
from transcoder.exceptions import ConfigurationError, FallbackEncodeError, RenditionEncodeError
from transcoder.models.job import Rendition, SourceDescriptor
from transcoder.models.schemas import TranscodeOptions, TranscodeOutput
from transcoder.services.file_service import FileService
from transcoder.services.ladder import plan_ladder
from transcoder.services.manifest import write_dash_manifest, write_single_file_manifest
from transcoder.utils.ffmpeg import FFmpegError, FFmpegRunner, ProgressCallback, build_dash_command, build_single_file_command
from transcoder.utils.ffprobe import probe_source

logger = logging.getLogger(__name__)

ProbeFunction = Callable[[str, str], Awaitable[SourceDescriptor]]


def gop_size(segment_duration: int, framerate: float) -> int:
    """Keyframe interval in frames so that segments start on a keyframe."""
    return max(int(round(segment_duration * framerate)), 1)


def parse_bitrate(value: str) -> int:
    """Convert an ffmpeg bitrate string such as "128k" to bits per second."""
    value = value.strip().lower()
    multipliers = {"k": 1000, "m": 1_000_000}
    if value and value[-1] in multipliers:
        return int(float(value[:-1]) * multipliers[value[-1]])
    return int(float(value))


class ConversionService:
    """Service for running the encode pipeline of one job."""

    def __init__(
        self,
        config: Settings = default_settings,
        runner: Optional[FFmpegRunner] = None,
        file_service: Optional[FileService] = None,
        probe: ProbeFunction = probe_source,
    ):
        self.settings = config
        self.runner = runner or FFmpegRunner(config.FFMPEG_PATH)
        self.file_service = file_service or FileService(config.TEMP_DIR, config.OUTPUT_DIR_MODE)
        self.probe = probe
        self._engine_available: Optional[bool] = None
        self._engine_lock = asyncio.Lock()

    async def engine_available(self) -> bool:
        """Check the encoding engine once per process."""
        async with self._engine_lock:
            if self._engine_available is None:
                self._engine_available = await self.runner.check_available()
                logger.info(f"FFmpeg available: {self._engine_available}")
        return self._engine_available

    async def ensure_ready(self):
        """
        Verify that transcoding can run at all.

        Raises:
            ConfigurationError: If transcoding is disabled or ffmpeg is unreachable
        """
        if not self.settings.TRANSCODE_ENABLED:
            raise ConfigurationError("Video transcoding is disabled")
        if not await self.engine_available():
            raise ConfigurationError(f"FFmpeg is not available ({self.runner.ffmpeg_path})")

    def plan(self, source: SourceDescriptor, options: TranscodeOptions) -> list[Rendition]:
        """Plan the ladder for a source using job options, then settings."""
        return plan_ladder(
            source,
            min_bitrate=options.min_bitrate or self.settings.MIN_BITRATE,
            max_bitrate=options.max_bitrate or self.settings.MAX_BITRATE,
            threshold=self.settings.BITRATE_THRESHOLD,
        )

    async def transcode(
        self,
        input_path: str,
        output_dir: str,
        options: Optional[TranscodeOptions] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> TranscodeOutput:
        """
        Execute the full pipeline for one source file.

        Args:
            input_path: Absolute path to source file
            output_dir: Base directory for the package
            options: Per-job options
            progress_callback: Async function called with percent complete

        Returns:
            Output artifacts

        Raises:
            ConfigurationError: Transcoding unavailable, nothing was attempted
            ProbeError: Source could not be read
            FallbackEncodeError: Both the DASH encode and the fallback failed
        """
        options = options or TranscodeOptions()
        await self.ensure_ready()

        source = await self.probe(input_path, self.settings.FFPROBE_PATH)
        segment_duration = options.segment_duration or self.settings.SEGMENT_DURATION
        gop = gop_size(segment_duration, source.framerate)
        renditions = self.plan(source, options)
        logger.info(
            f"Planned {', '.join(f'{r.label}:{r.width}x{r.height}@{r.bitrate}k' for r in renditions)} "
            f"for {input_path} (GOP {gop})"
        )

        package_dir = self.file_service.prepare_output_dir(output_dir)
        base_name = self.file_service.new_base_name()
        manifest_path = package_dir / f"{base_name}.mpd"

        try:
            await self._encode_dash(
                input_path, source, renditions, gop, segment_duration, package_dir, base_name, progress_callback
            )
            produced = renditions
            fallback = False
        except RenditionEncodeError as e:
            logger.warning(f"Multi-rendition encode failed for {input_path}, falling back to single rendition: {e}")
            await self.file_service.remove_partial_outputs(package_dir, base_name)
            produced = [await self._encode_fallback(
                input_path, source, renditions, gop, package_dir, base_name, progress_callback
            )]
            fallback = True

        deleted = await self.file_service.cleanup_source(input_path, self.settings.RETAIN_ORIGINAL)

        return TranscodeOutput(
            base_name=base_name,
            manifest_path=str(manifest_path),
            output_dir=str(package_dir),
            renditions=produced,
            quality_labels=[r.label for r in produced],
            retained_original=not deleted,
            fallback=fallback,
        )

    async def _encode_dash(
        self,
        input_path: str,
        source: SourceDescriptor,
        renditions: Sequence[Rendition],
        gop: int,
        segment_duration: int,
        package_dir: Path,
        base_name: str,
        progress_callback: Optional[ProgressCallback],
    ):
        manifest_path = str(package_dir / f"{base_name}.mpd")
        args = build_dash_command(
            input_path,
            manifest_path,
            renditions,
            gop,
            segment_duration,
            base_name,
            has_audio=source.has_audio,
            preset=self.settings.VIDEO_PRESET,
            audio_bitrate=self.settings.AUDIO_BITRATE,
        )
        try:
            await self.runner.run(args, source.duration, progress_callback)
            # Replace the muxer's manifest with our own description of the package
            write_dash_manifest(
                renditions,
                source.duration,
                manifest_path,
                base_name,
                segment_duration,
                audio_bandwidth=parse_bitrate(self.settings.AUDIO_BITRATE) if source.has_audio else None,
            )
        except (FFmpegError, OSError) as e:
            raise RenditionEncodeError(str(e)) from e

    async def _encode_fallback(
        self,
        input_path: str,
        source: SourceDescriptor,
        renditions: Sequence[Rendition],
        gop: int,
        package_dir: Path,
        base_name: str,
        progress_callback: Optional[ProgressCallback],
    ) -> Rendition:
        rendition = renditions[len(renditions) // 2]
        media_path = package_dir / f"{base_name}_{rendition.label}.mp4"
        args = build_single_file_command(
            input_path,
            str(media_path),
            rendition,
            gop,
            has_audio=source.has_audio,
            preset=self.settings.VIDEO_PRESET,
            audio_bitrate=self.settings.AUDIO_BITRATE,
        )
        try:
            await self.runner.run(args, source.duration, progress_callback)
            write_single_file_manifest(
                rendition, source.duration, str(package_dir / f"{base_name}.mpd"), str(media_path)
            )
        except (FFmpegError, OSError) as e:
            raise FallbackEncodeError(f"Fallback encode failed [{rendition.label}]: {e}") from e
        logger.info(f"Fallback encode produced {media_path.name}")
        return rendition
