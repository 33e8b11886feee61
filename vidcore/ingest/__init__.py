"""External analysis tools wrapped behind typed, timeout-bounded interfaces."""

from vidcore.ingest.ffprobe_parser import ProbeReport, parse_ffprobe_json
from vidcore.ingest.interfaces import MediaProber, Outcome, ThumbnailExtractor, settle
from vidcore.ingest.probe import FFprobeProber
from vidcore.ingest.thumbnails import FFmpegThumbnailExtractor

__all__ = [
    "FFprobeProber",
    "FFmpegThumbnailExtractor",
    "MediaProber",
    "Outcome",
    "ProbeReport",
    "ThumbnailExtractor",
    "parse_ffprobe_json",
    "settle",
]
