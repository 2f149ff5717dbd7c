"""Quality ladder planning.

Turns a probed source and a catalog of candidate rungs into the ordered list
of renditions to encode. The planner never upscales, never asks for more
bitrate than the source can justify and always reproduces the source aspect
ratio, for landscape and portrait sources alike. Rungs too small to hold the
ratio within ASPECT_TOLERANCE after even rounding are dropped.
"""

import logging
from typing import Optional, Sequence

from transcoder.models.job import LadderRung, Rendition, SourceDescriptor

logger = logging.getLogger(__name__)

DEFAULT_BITRATE_THRESHOLD = 0.8
FALLBACK_BITRATE_KBPS = 1000
# Largest absolute width/height ratio error a catalog rung may introduce
ASPECT_TOLERANCE = 0.01

# Landscape presets; portrait sources are matched on the short side
PRESET_CATALOG = (
    (640, 360, "360p"),
    (854, 480, "480p"),
    (1280, 720, "720p"),
    (1920, 1080, "1080p"),
)


def make_rendition(width: int, height: int, bitrate: int, label: str) -> Rendition:
    """Build a rendition with derived rate-control values."""
    return Rendition(
        width=width,
        height=height,
        bitrate=bitrate,
        maxrate=int(round(bitrate * 1.2)),
        bufsize=bitrate * 2,
        label=label,
    )


def interpolate_catalog(min_bitrate: int, max_bitrate: int) -> list[LadderRung]:
    """
    Spread a bitrate range linearly across the preset catalog.

    Args:
        min_bitrate: Bitrate of the smallest preset (kbps)
        max_bitrate: Bitrate of the largest preset (kbps)

    Returns:
        Catalog rungs, smallest first
    """
    if max_bitrate < min_bitrate:
        min_bitrate, max_bitrate = max_bitrate, min_bitrate

    steps = max(len(PRESET_CATALOG) - 1, 1)
    step = (max_bitrate - min_bitrate) / steps
    return [
        LadderRung(width=width, height=height, bitrate=int(round(min_bitrate + step * index)), label=label)
        for index, (width, height, label) in enumerate(PRESET_CATALOG)
    ]


def _even(value: float, limit: int) -> int:
    """Round to the nearest even integer without exceeding limit."""
    result = int(round(value / 2.0)) * 2
    if result > limit:
        result -= 2
    return max(result, 2)


def _fit_dimensions(source: SourceDescriptor, target_short: int) -> tuple[int, int]:
    """Scale the source to a short side of target_short, keeping its aspect ratio."""
    source_short = min(source.width, source.height)
    source_long = max(source.width, source.height)

    out_short = _even(min(target_short, source_short), source_short)
    out_long = _even(min(out_short * source_long / source_short, source_long), source_long)

    if source.width >= source.height:
        return out_long, out_short
    return out_short, out_long


def plan_ladder(
    source: SourceDescriptor,
    catalog: Optional[Sequence[LadderRung]] = None,
    min_bitrate: int = 500,
    max_bitrate: int = 2500,
    threshold: float = DEFAULT_BITRATE_THRESHOLD,
    fallback_bitrate: int = FALLBACK_BITRATE_KBPS,
) -> list[Rendition]:
    """
    Plan the renditions to produce for a source.

    Args:
        source: Probed source description
        catalog: Explicit candidate rungs; when None the preset catalog is
            interpolated between min_bitrate and max_bitrate
        min_bitrate: Lower end of the interpolated range (kbps)
        max_bitrate: Upper end of the interpolated range (kbps)
        threshold: Fraction of the source bitrate a rung may use
        fallback_bitrate: Bitrate cap for the synthesized rung

    Returns:
        Renditions sorted ascending by resolution; never empty
    """
    if source.width <= 0 or source.height <= 0:
        raise ValueError(f"Invalid source dimensions {source.width}x{source.height}")

    candidates = list(catalog) if catalog is not None else interpolate_catalog(min_bitrate, max_bitrate)
    source_short = min(source.width, source.height)
    bitrate_ceiling = source.bitrate * threshold if source.bitrate > 0 else None

    renditions = []
    for rung in candidates:
        if rung.short_side > source_short:
            logger.debug(f"Skipping {rung.label}: short side {rung.short_side} exceeds source {source_short}")
            continue
        if bitrate_ceiling is not None and rung.bitrate > bitrate_ceiling:
            logger.debug(f"Skipping {rung.label}: {rung.bitrate}k exceeds {bitrate_ceiling:.0f}k")
            continue
        width, height = _fit_dimensions(source, rung.short_side)
        if abs(width / height - source.width / source.height) > ASPECT_TOLERANCE:
            logger.debug(f"Skipping {rung.label}: {width}x{height} misses the source aspect ratio")
            continue
        renditions.append(make_rendition(width, height, rung.bitrate, rung.label))

    if not renditions:
        width, height = _fit_dimensions(source, source_short)
        bitrate = min(source.bitrate, fallback_bitrate) if source.bitrate > 0 else fallback_bitrate
        label = f"{min(width, height)}p"
        logger.info(f"No catalog rung fits {source.width}x{source.height}, using source resolution {label}")
        renditions.append(make_rendition(width, height, bitrate, label))

    renditions.sort(key=lambda r: (r.width * r.height, r.bitrate))
    return renditions
