"""In-process stand-ins for the ffprobe/ffmpeg backed analysis tools."""

from __future__ import annotations

import asyncio
from typing import Optional

from vidcore.core.errors import ExtractionFailed, ProbeFailed
from vidcore.core.storage import Storage
from vidcore.ingest.ffprobe_parser import ProbeReport, VideoSummary

FAKE_JPEG = b"\xff\xd8\xff\xe0fake-jpeg-payload\xff\xd9"


class FakeProber:
    def __init__(
        self,
        *,
        duration: Optional[float] = 12.5,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        started: Optional[asyncio.Event] = None,
        wait_for: Optional[asyncio.Event] = None,
    ):
        self.duration = duration
        self.error = error
        self.delay = delay
        self.started = started
        self.wait_for = wait_for
        self.calls: list[str] = []

    async def probe(self, location: str) -> ProbeReport:
        self.calls.append(location)
        if self.started is not None:
            self.started.set()
        if self.wait_for is not None:
            await asyncio.wait_for(self.wait_for.wait(), timeout=2)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ProbeReport(
            duration_s=self.duration,
            container="mov,mp4,m4a,3gp,3g2,mj2",
            bitrate_kbps=1200,
            video=VideoSummary(codec="h264", width_px=1280, height_px=720, frame_rate_fps=30.0),
            audio=None,
            warnings=["no_audio_stream"],
        )

    async def probe_duration(self, location: str) -> float:
        return (await self.probe(location)).require_duration()


class FakeExtractor:
    def __init__(
        self,
        storage: Storage,
        *,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        started: Optional[asyncio.Event] = None,
        wait_for: Optional[asyncio.Event] = None,
        on_start=None,
    ):
        self.storage = storage
        self.error = error
        self.delay = delay
        self.started = started
        self.wait_for = wait_for
        self.on_start = on_start
        self.calls: list[tuple[str, float]] = []

    async def extract_thumbnail(self, location: str, offset_s: float = 1.0) -> str:
        self.calls.append((location, offset_s))
        if self.started is not None:
            self.started.set()
        if self.on_start is not None:
            await self.on_start(location)
        if self.wait_for is not None:
            await asyncio.wait_for(self.wait_for.wait(), timeout=2)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.storage.put(FAKE_JPEG, "frame.jpg", namespace="thumbs")


def failing_tools(storage: Storage, reason: str = "ffprobe_failed") -> tuple[FakeProber, FakeExtractor]:
    prober = FakeProber(error=ProbeFailed(reason, detail="moov atom not found"))
    extractor = FakeExtractor(storage, error=ExtractionFailed("ffmpeg_failed", detail="invalid data"))
    return prober, extractor


__all__ = ["FAKE_JPEG", "FakeProber", "FakeExtractor", "failing_tools"]
