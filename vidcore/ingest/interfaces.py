from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, Protocol, TypeVar

from vidcore.core.errors import AnalysisError

from .ffprobe_parser import ProbeReport

T = TypeVar("T")


class MediaProber(Protocol):
    async def probe(self, location: str) -> ProbeReport:
        """Return the probe report; ``duration_s`` may still be None."""
        ...

    async def probe_duration(self, location: str) -> float:
        """Return the media duration in seconds.

        Raises ``ProbeFailed`` when the duration cannot be determined.
        """
        ...


class ThumbnailExtractor(Protocol):
    async def extract_thumbnail(self, location: str, offset_s: float = 1.0) -> str:
        """Store one still frame taken near ``offset_s`` and return its location.

        Raises ``ExtractionFailed`` when no frame could be stored.
        """
        ...


@dataclass(slots=True)
class Outcome(Generic[T]):
    """Settled result of one analysis branch: a value or the typed failure."""

    value: Optional[T] = None
    error: Optional[AnalysisError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle(awaitable: Awaitable[T]) -> Outcome[T]:
    """Await an analysis call, turning its expected failure into an ``Outcome``.

    Only ``AnalysisError`` is captured; anything else propagates.
    """
    try:
        return Outcome(value=await awaitable)
    except AnalysisError as exc:
        return Outcome(error=exc)


__all__ = ["MediaProber", "ThumbnailExtractor", "Outcome", "settle"]
