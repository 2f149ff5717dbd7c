"""Errors raised while transcoding a job."""


class TranscodeError(Exception):
    """Base class for per-job transcoding errors."""


class ConfigurationError(TranscodeError):
    """Transcoding is disabled or the encoding engine cannot be run."""


class ProbeError(TranscodeError):
    """The source file could not be probed."""


class RenditionEncodeError(TranscodeError):
    """The multi-rendition segmented encode failed."""


class FallbackEncodeError(TranscodeError):
    """The single-rendition fallback encode failed."""


class CleanupError(TranscodeError):
    """A source file could not be removed after processing."""
