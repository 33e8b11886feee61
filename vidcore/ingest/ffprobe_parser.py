from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from vidcore.core.errors import ProbeFailed

PARSER_VERSION = "vidcore.ingest/0.1.0"


@dataclass(slots=True)
class VideoSummary:
    """A dataclass to store the selected video stream."""

    codec: str
    width_px: int
    height_px: int
    frame_rate_fps: Optional[float]


@dataclass(slots=True)
class AudioSummary:
    """A dataclass to store the selected audio stream."""

    codec: str
    channels: int
    sample_rate_hz: int


@dataclass(slots=True)
class ProbeReport:
    """Lightweight facts derived from one ffprobe run."""

    duration_s: Optional[float]
    container: str
    bitrate_kbps: Optional[int]
    video: Optional[VideoSummary]
    audio: Optional[AudioSummary]
    warnings: List[str] = field(default_factory=list)

    def require_duration(self) -> float:
        """Return the duration, raising ``ProbeFailed`` when it is unknown or negative."""
        if self.duration_s is None:
            raise ProbeFailed("duration_unavailable")
        if self.duration_s < 0:
            raise ProbeFailed("negative_duration", detail=str(self.duration_s))
        return self.duration_s

    def as_media_info(self) -> Dict[str, Any]:
        """Return the JSON-ready summary stored on a record."""
        payload = asdict(self)
        payload.pop("duration_s")
        payload["parser"] = PARSER_VERSION
        return payload


def parse_ffprobe_json(raw: Dict[str, Any]) -> ProbeReport:
    """Normalise ffprobe JSON into a probe report.

    Args:
        raw: The raw ffprobe JSON (``-show_format -show_streams``).

    Returns:
        The probe report. ``duration_s`` is None when ffprobe did not report one.
    """
    warnings: List[str] = []

    format_info = raw.get("format") or {}
    duration_s, duration_warning = _parse_duration(format_info.get("duration"))
    if duration_warning:
        warnings.append(duration_warning)

    video_streams, audio_streams = _split_streams(raw.get("streams") or [])

    video = _summarise_video_stream(video_streams)
    if video is None:
        warnings.append("no_video_stream")
    elif video.frame_rate_fps is None:
        warnings.append("frame_rate_unavailable")

    audio = _summarise_audio_stream(audio_streams)
    if audio is None:
        warnings.append("no_audio_stream")

    return ProbeReport(
        duration_s=duration_s,
        container=format_info.get("format_name") or format_info.get("format_long_name") or "unknown",
        bitrate_kbps=_parse_bitrate_kbps(format_info.get("bit_rate")),
        video=video,
        audio=audio,
        warnings=sorted(set(warnings)),
    )


def _parse_duration(raw_value: Any) -> Tuple[Optional[float], Optional[str]]:
    # N/A, NaN and inf all mean the container did not report a usable duration.
    if raw_value in (None, "N/A", ""):
        return None, "duration_unavailable"
    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        return None, "duration_unavailable"
    if math.isnan(value) or math.isinf(value):
        return None, "duration_unavailable"
    return value, None


def _parse_bitrate_kbps(raw_value: Any) -> Optional[int]:
    if raw_value in (None, "N/A", ""):
        return None
    try:
        return int(round(int(raw_value) / 1000))
    except (TypeError, ValueError):
        return None


def _split_streams(streams: Iterable[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    video_streams: List[Dict[str, Any]] = []
    audio_streams: List[Dict[str, Any]] = []
    for stream in streams:
        codec_type = stream.get("codec_type")
        if not isinstance(codec_type, str):
            continue
        if codec_type.lower() == "video":
            video_streams.append(stream)
        elif codec_type.lower() == "audio":
            audio_streams.append(stream)
    return video_streams, audio_streams


def _int_or_none(value: Any) -> Optional[int]:
    if value in (None, "N/A", ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _is_default(stream: Dict[str, Any]) -> bool:
    disposition = stream.get("disposition")
    if not isinstance(disposition, dict):
        return False
    return bool(disposition.get("default"))


def _summarise_video_stream(streams: List[Dict[str, Any]]) -> Optional[VideoSummary]:
    """Summarise the video stream.

    The first default stream wins; otherwise the highest resolution one.
    Attached pictures (cover art) are ignored.

    Args:
        streams: The video streams.

    Returns:
        The video summary, or None when there is no usable video stream.
    """
    candidates = [
        stream
        for stream in streams
        if not (isinstance(stream.get("disposition"), dict) and stream["disposition"].get("attached_pic"))
    ]
    if not candidates:
        return None

    defaults = [stream for stream in candidates if _is_default(stream)]
    if defaults:
        selected = defaults[0]
    else:
        selected = max(
            candidates,
            key=lambda item: (_int_or_none(item.get("width")) or 0) * (_int_or_none(item.get("height")) or 0),
        )

    frame_rate = None
    for key in ("avg_frame_rate", "r_frame_rate"):
        frame_rate = _parse_rational(selected.get(key))
        if frame_rate is not None:
            break

    return VideoSummary(
        codec=selected.get("codec_name") or "unknown",
        width_px=_int_or_none(selected.get("width")) or 0,
        height_px=_int_or_none(selected.get("height")) or 0,
        frame_rate_fps=frame_rate,
    )


def _summarise_audio_stream(streams: List[Dict[str, Any]]) -> Optional[AudioSummary]:
    if not streams:
        return None

    defaults = [stream for stream in streams if _is_default(stream)]
    if defaults:
        selected = defaults[0]
    else:
        selected = max(
            streams,
            key=lambda item: (_int_or_none(item.get("channels")) or 0, _int_or_none(item.get("sample_rate")) or 0),
        )

    return AudioSummary(
        codec=selected.get("codec_name") or "unknown",
        channels=_int_or_none(selected.get("channels")) or 0,
        sample_rate_hz=_int_or_none(selected.get("sample_rate")) or 0,
    )


def _parse_rational(value: Optional[str]) -> Optional[float]:
    """Parse a rational number.

    Args:
        value: The rational number as a string.

    Returns:
        The parsed rational number, or None if it's not valid.
    """
    if not value or value in {"0/0", "N/A"}:
        return None
    if "/" not in value:
        # Already a float string.
        try:
            return round(float(value), 2)
        except ValueError:
            return None
    numerator_str, denominator_str = value.split("/", 1)
    try:
        numerator = float(numerator_str)
        denominator = float(denominator_str)
    except ValueError:
        return None
    if math.isclose(denominator, 0.0):
        return None
    return round(numerator / denominator, 2)


__all__ = [
    "AudioSummary",
    "ProbeReport",
    "VideoSummary",
    "parse_ffprobe_json",
]
