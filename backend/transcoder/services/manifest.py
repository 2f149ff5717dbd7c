"""DASH manifest (MPD) generation."""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from transcoder.models.job import Rendition
from transcoder.utils.ffmpeg import INIT_SEGMENT_TEMPLATE, MEDIA_SEGMENT_TEMPLATE

logger = logging.getLogger(__name__)

MPD_NAMESPACE = "urn:mpeg:dash:schema:mpd:2011"
LIVE_PROFILE = "urn:mpeg:dash:profile:isoff-live:2011"
ON_DEMAND_PROFILE = "urn:mpeg:dash:profile:isoff-on-demand:2011"

# H.264 Main@3.1 + AAC-LC, matching the fallback encode settings
FALLBACK_CODECS = "avc1.4d401f,mp4a.40.2"

ET.register_namespace("", MPD_NAMESPACE)


def _tag(name: str) -> str:
    return f"{{{MPD_NAMESPACE}}}{name}"


def format_duration(seconds: float) -> str:
    """
    Format a duration as an ISO 8601 duration (e.g., PT1H2M5.5S).

    Args:
        seconds: Duration in seconds

    Returns:
        Duration string
    """
    total_ms = int(round(max(seconds or 0.0, 0.0) * 1000))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs = remainder / 1000

    duration = "PT"
    if hours:
        duration += f"{hours}H"
    if minutes:
        duration += f"{minutes}M"
    if secs or duration == "PT":
        duration += f"{secs:.3f}".rstrip("0").rstrip(".") or "0"
        duration += "S"
    return duration


def _mpd_root(duration: float, profile: str) -> ET.Element:
    return ET.Element(_tag("MPD"), {
        "type": "static",
        "mediaPresentationDuration": format_duration(duration),
        "minBufferTime": "PT2S",
        "profiles": profile,
    })


def _write(root: ET.Element, manifest_path: str):
    ET.indent(root)
    Path(manifest_path).parent.mkdir(parents=True, exist_ok=True)
    ET.ElementTree(root).write(manifest_path, encoding="utf-8", xml_declaration=True)
    logger.info(f"DASH manifest written: {manifest_path}")


def build_dash_manifest(
    renditions: Sequence[Rendition],
    duration: float,
    base_name: str,
    segment_duration: int,
    audio_bandwidth: Optional[int] = None,
) -> ET.Element:
    """
    Build a segmented multi-rendition manifest.

    Args:
        renditions: Produced renditions, in encode order
        duration: Source duration in seconds
        base_name: Prefix of the segment files
        segment_duration: Segment length in seconds
        audio_bandwidth: Shared audio stream bandwidth (bps), None without audio

    Returns:
        MPD root element
    """
    root = _mpd_root(duration, LIVE_PROFILE)
    period = ET.SubElement(root, _tag("Period"), {"id": "0", "start": "PT0S"})

    segment_attrs = {
        "timescale": "1000",
        "duration": str(segment_duration * 1000),
        "startNumber": "1",
        "initialization": INIT_SEGMENT_TEMPLATE.format(base=base_name).replace("$ext$", "m4s"),
        "media": MEDIA_SEGMENT_TEMPLATE.format(base=base_name).replace("$ext$", "m4s"),
    }

    video_set = ET.SubElement(period, _tag("AdaptationSet"), {
        "id": "0",
        "contentType": "video",
        "mimeType": "video/mp4",
        "segmentAlignment": "true",
        "startWithSAP": "1",
    })
    ET.SubElement(video_set, _tag("SegmentTemplate"), segment_attrs)
    for index, rendition in enumerate(renditions):
        ET.SubElement(video_set, _tag("Representation"), {
            "id": str(index),
            "bandwidth": str(rendition.bitrate * 1000),
            "width": str(rendition.width),
            "height": str(rendition.height),
        })

    if audio_bandwidth is not None:
        audio_set = ET.SubElement(period, _tag("AdaptationSet"), {
            "id": "1",
            "contentType": "audio",
            "mimeType": "audio/mp4",
            "segmentAlignment": "true",
            "startWithSAP": "1",
        })
        ET.SubElement(audio_set, _tag("SegmentTemplate"), segment_attrs)
        # The audio stream follows the video streams in the encode output
        ET.SubElement(audio_set, _tag("Representation"), {
            "id": str(len(renditions)),
            "bandwidth": str(audio_bandwidth),
        })

    return root


def write_dash_manifest(
    renditions: Sequence[Rendition],
    duration: float,
    manifest_path: str,
    base_name: str,
    segment_duration: int,
    audio_bandwidth: Optional[int] = None,
) -> str:
    """Write a segmented multi-rendition manifest and return its path."""
    if not renditions:
        raise ValueError("Cannot write a manifest without renditions")
    root = build_dash_manifest(renditions, duration, base_name, segment_duration, audio_bandwidth)
    _write(root, manifest_path)
    return manifest_path


def build_single_file_manifest(rendition: Rendition, duration: float, media_file: str) -> ET.Element:
    """Build a one-representation manifest for a plain MP4 file."""
    root = _mpd_root(duration, ON_DEMAND_PROFILE)
    period = ET.SubElement(root, _tag("Period"), {"id": "0", "start": "PT0S"})
    adaptation_set = ET.SubElement(period, _tag("AdaptationSet"), {
        "id": "0",
        "contentType": "video",
        "mimeType": "video/mp4",
        "subsegmentAlignment": "true",
        "subsegmentStartsWithSAP": "1",
    })
    representation = ET.SubElement(adaptation_set, _tag("Representation"), {
        "id": "0",
        "mimeType": "video/mp4",
        "codecs": FALLBACK_CODECS,
        "bandwidth": str(rendition.bitrate * 1000),
        "width": str(rendition.width),
        "height": str(rendition.height),
    })
    base_url = ET.SubElement(representation, _tag("BaseURL"))
    base_url.text = Path(media_file).name
    return root


def write_single_file_manifest(rendition: Rendition, duration: float, manifest_path: str, media_file: str) -> str:
    """Write a one-representation manifest and return its path."""
    _write(build_single_file_manifest(rendition, duration, media_file), manifest_path)
    return manifest_path


def parse_representations(manifest_xml: str) -> List[Dict[str, Any]]:
    """
    Read back the video representations of a manifest.

    Args:
        manifest_xml: MPD document text

    Returns:
        One dict per video representation (id, bandwidth, width, height, codecs)
    """
    root = ET.fromstring(manifest_xml)
    representations = []
    for adaptation_set in root.iter(_tag("AdaptationSet")):
        if adaptation_set.get("contentType") != "video":
            continue
        for rep in adaptation_set.iter(_tag("Representation")):
            representations.append({
                "id": rep.get("id"),
                "bandwidth": int(rep.get("bandwidth", 0)),
                "width": int(rep.get("width", 0)),
                "height": int(rep.get("height", 0)),
                "codecs": rep.get("codecs"),
            })
    return representations
